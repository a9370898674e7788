"""Package entry point for ``python -m wavelink_roster``.

HOW: ``--serve`` as the first argument starts the HTTP API with the
configured data directory; anything else goes to the CLI.

RULES:
- ``python -m wavelink_roster --serve`` runs the API (WAVELINK_API_HOST/PORT)
- Without ``--serve``, falls through to the CLI
"""

import sys

if __name__ == "__main__":
    if sys.argv[1:2] == ["--serve"]:
        from wavelink_roster.server.app import run_api
        run_api()
    else:
        from wavelink_roster.cli import main
        main()
