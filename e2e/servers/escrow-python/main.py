"""Escrow E2E Test Server.

Serves the settlement and funding endpoints for e2e testing, configured
entirely from the environment (see ``veridoc.config.Settings.from_env``).
"""

import os
import threading

from dotenv import load_dotenv

load_dotenv()

PORT = int(os.getenv("PORT", "4030"))

if not os.getenv("CRON_SECRET"):
    print("CRON_SECRET environment variable is required")
    exit(1)


def main() -> None:
    """Start the escrow server."""
    import uvicorn
    from starlette.responses import JSONResponse
    from starlette.routing import Route

    from veridoc.config import Settings, configure_logging
    from veridoc.http import create_app

    settings = Settings.from_env(dotenv=False)
    configure_logging(settings.log_level)

    app = create_app(settings)

    async def close(request):
        response = JSONResponse({"message": "Server shutting down gracefully"})

        def shutdown():
            import time

            time.sleep(0.1)
            os._exit(0)

        threading.Thread(target=shutdown, daemon=True).start()
        return response

    app.router.routes.append(Route("/close", close, methods=["POST"]))

    print(f"Server listening on port {PORT} ({settings.network})")
    print(f"Release: POST http://localhost:{PORT}/settlements/release")
    print(f"Health: http://localhost:{PORT}/health")

    uvicorn.run(app, host="0.0.0.0", port=PORT, log_level="warning")


if __name__ == "__main__":
    main()
