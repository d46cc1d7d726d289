"""Entry point for running the assistant server as a module.

This allows running the server with: python -m analytics.services.assistant_server
"""

from analytics.services.assistant_server.main import main

if __name__ == "__main__":
    main()
