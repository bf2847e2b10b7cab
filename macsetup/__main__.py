"""Allow ``python -m macsetup``."""

from macsetup.main import main

if __name__ == "__main__":
    main()
