"""WSGI entry point for production deployment."""
import sys
import os
import atexit
import logging
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent))

from config import load_config
from utils.logger import setup_logging
from models.database import Database
from monitor.sources import build_source
from alerts.engine import AlertEngine
from alerts.channels import build_channels
from web.app import create_app

logger = logging.getLogger("cfalerts.wsgi")

config = load_config(os.environ.get("CF_ALERTS_CONFIG"))
setup_logging(config["logging"]["level"], config["logging"].get("file"))

db = Database(config["database"]["path"])
db.connect()

engine = AlertEngine(db, build_source(config), config, build_channels(config))
engine.initialize()
atexit.register(engine.shutdown)

app = create_app(config, engine)
logger.info("WSGI app ready")
