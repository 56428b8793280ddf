"""Package entry point for ``python -m convertio_client``.

Delegates to the CLI's main().
"""

from convertio_client.cli import main

if __name__ == "__main__":
    main()
