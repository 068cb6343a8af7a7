# storecompare/db/bigquery_client.py

import logging
import os

from google.cloud import bigquery
from google.oauth2 import service_account

from storecompare.config import settings

logger = logging.getLogger(__name__)

# Path to the credentials file (repository root)
CREDENTIALS_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), "gcp-credentials.json"
)


def get_bigquery_client() -> bigquery.Client:
    """
    Returns a BigQuery client using the service account credentials.
    """
    credentials = service_account.Credentials.from_service_account_file(
        CREDENTIALS_PATH,
        scopes=["https://www.googleapis.com/auth/cloud-platform"],
    )
    client = bigquery.Client(project=settings.GCP_PROJECT_ID, credentials=credentials)
    logger.info("Created BigQuery client using service account credentials")
    return client


def table_ref(table: str) -> str:
    return f"`{settings.GCP_PROJECT_ID}.{settings.BIGQUERY_DATASET_ID}.{table}`"
