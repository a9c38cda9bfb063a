"""
Serverless entry point for the Ticketflow API
"""
import os

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("SLA_CONFIG_PATH", "/tmp/sla_config.yaml")
os.environ.setdefault("SLA_SWEEP_INTERVAL_SECONDS", "0")  # Disable scheduler in serverless

from mangum import Mangum

from ticketflow.main import app

# Lambda handler for the ASGI app; lifespan sets up database and services
handler = Mangum(app, lifespan="auto")
