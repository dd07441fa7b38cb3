"""
Entry point for the edge service.

Usage:
    python -m arbedge
    arbedge  # if installed via pip
"""

import sys


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success).
    """
    import uvicorn
    from pydantic import ValidationError

    from arbedge import __version__
    from arbedge.api.server import create_app
    from arbedge.config.settings import get_settings
    from arbedge.telemetry.logger import setup_logging

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Configuration error: {e}")
        print("\nCheck ENGINE_URL and the PROXY_*_JSON variables in your .env file.")
        return 1

    queue_logging = setup_logging(settings.log_level, settings.log_file)

    print(
        f"""
Arbitrage Edge v{__version__}
  Environment:  {settings.environment}
  Engine:       {settings.engine_url}
  Listening:    http://{settings.host}:{settings.port}
  uvloop:       {'Enabled' if settings.use_uvloop else 'Disabled'}
    """
    )

    try:
        uvicorn.run(
            create_app(settings),
            host=settings.host,
            port=settings.port,
            loop="uvloop" if settings.use_uvloop else "asyncio",
            log_config=None,
            log_level="warning",
        )
    finally:
        queue_logging.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
