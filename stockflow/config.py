from dotenv import load_dotenv
from google.oauth2 import service_account
from google.cloud import firestore

import threading
import traceback
import os

load_dotenv()

# Firestore client used for the status listener
status_db = None
status_config = {
    "status": "unknown",
    "api": {},
}

title = "PSF StockFlow API"
description = "API for connecting eBay seller accounts and syncing selected listings and orders"
version = "1.0.0"

config = {
    "name": title,
    "description": description,
    "version": version,
    "status": status_config,
}

# eBay app credentials
EBAY_CLIENT_ID = os.getenv("EBAY_CLIENT_ID")
EBAY_CLIENT_SECRET = os.getenv("EBAY_CLIENT_SECRET")
EBAY_DEV_ID = os.getenv("EBAY_DEV_ID")
EBAY_RUNAME = os.getenv("EBAY_RUNAME")
EBAY_SANDBOX = os.getenv("EBAY_SANDBOX")

# Webhooks and cron
EBAY_WEBHOOK_SECRET = os.getenv("EBAY_WEBHOOK_SECRET")
EBAY_WEBHOOK_VERIFICATION_TOKEN = os.getenv("EBAY_WEBHOOK_VERIFICATION_TOKEN")
# Public callback url when the service sits behind a proxy
EBAY_WEBHOOK_ENDPOINT = os.getenv("EBAY_WEBHOOK_ENDPOINT")
EBAY_WEBHOOK_REQUIRE_DELIVERY_ID = (
    os.getenv("EBAY_WEBHOOK_REQUIRE_DELIVERY_ID", "false").lower() == "true"
)
CRON_SECRET = os.getenv("EBAY_CRON_SECRET") or os.getenv("CRON_SECRET")

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() != "false"

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

callback_done = threading.Event()


def is_sandbox_app() -> bool:
    """
    EBAY_SANDBOX=false always means production. Otherwise the app is treated as
    sandbox when EBAY_SANDBOX=true or the client id is a sandbox (SBX) key.
    """
    if EBAY_SANDBOX == "false":
        return False
    return EBAY_SANDBOX == "true" or "SBX" in (EBAY_CLIENT_ID or "")


def is_api_active(store_type: str) -> bool:
    return status_config["api"].get(store_type, "active") == "active"


def firebase_credentials():
    private_key = os.getenv("FIREBASE_PRIVATE_KEY") or ""
    return service_account.Credentials.from_service_account_info(
        {
            "type": "service_account",
            "project_id": os.getenv("FIREBASE_PROJECT_ID"),
            "private_key_id": os.getenv("FIREBASE_PRIVATE_KEY_ID"),
            "private_key": private_key.replace("\\n", "\n"),
            "client_email": os.getenv("FIREBASE_CLIENT_EMAIL"),
            "client_id": os.getenv("FIREBASE_CLIENT_ID"),
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
            "client_x509_cert_url": os.getenv("FIREBASE_CLIENT_X509_CERT_URL"),
            "universe_domain": "googleapis.com",
        }
    )


def get_status_db():
    global status_db
    if status_db:
        return status_db

    try:
        status_db = firestore.Client(
            project=os.getenv("FIREBASE_PROJECT_ID"), credentials=firebase_credentials()
        )
        return status_db

    except Exception as error:
        print("Error initializing Firestore:", error)
        print(traceback.format_exc())


def on_status_snapshot(doc_snapshot, changes, read_time):
    try:
        for doc in doc_snapshot:
            data = doc.to_dict() or {}
            status_config["status"] = data.get("status", "unknown")
            status_config["api"] = data.get("api", {})
            print(f"Received document snapshot: {doc.id} with status: {status_config}")
        callback_done.set()
    except Exception as error:
        print("Error in on_status_snapshot:", error)
        print(traceback.format_exc())


def start_status_listener(timeout: float = 10):
    """Watch config/status and wait (up to timeout seconds) for the first snapshot."""
    db_client = get_status_db()
    if db_client is None:
        return None

    status_ref = db_client.collection("config").document("status")
    doc_watch = status_ref.on_snapshot(on_status_snapshot)
    callback_done.wait(timeout=timeout)
    return doc_watch
