"""Package entry point for ``python -m rsvp_reader``.

HOW: ``--serve`` starts the HTTP API under uvicorn; anything else goes to
the CLI's main().
"""

import sys

if __name__ == "__main__":
    if "--serve" in sys.argv:
        from rsvp_reader.server.app import run_api
        run_api()
    else:
        from rsvp_reader.cli import main
        main()
