# run.py
# Description: Entry point for the invoice sync server. Loads settings, sets up logging and serves the HTTP endpoints.
#
#    env GRIST_API_KEY=<YOUR-KEY> python run.py
#
# Imports
import sys
#
# 3rd-party Libraries
import uvicorn
from loguru import logger
#
# Local Imports
from grist_invoice_sync.config import get_config_path, load_settings
from grist_invoice_sync.grist_api import ConfigError
from grist_invoice_sync.Logging_Config import configure_logging
from grist_invoice_sync.server import create_app
#
#######################################################################################################################
#
# Functions:

def main() -> int:
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print(f"Specify env GRIST_API_KEY=<key> (or set it in {get_config_path()}) when running server", file=sys.stderr)
        return 1

    configure_logging(settings.log_level, settings.log_file)
    if settings.dry_run:
        logger.warning("Dry-run mode: changes to Grist documents will be logged, not sent")
    app = create_app(settings)
    logger.info(f"Server available at http://{settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())

#
# End of run.py
#######################################################################################################################
