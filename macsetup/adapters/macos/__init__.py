"""
macOS installers — one module per install strategy.

    privilege   sudo session (critical)
    xcode       Xcode Command Line Tools
    homebrew    Homebrew itself, formulae and casks
    shell       default shell, Oh My Zsh, zsh plugins
    docker      Docker Desktop from the disk image
    nvm         nvm and Node.js LTS
"""
