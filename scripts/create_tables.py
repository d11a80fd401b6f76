import sys
from pathlib import Path

# Ensure project root is on sys.path
current_dir = Path(__file__).resolve().parent
project_root = current_dir.parent

if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import boto3
from botocore.exceptions import ClientError

from shared_utils.config_loader import get_settings
from shared_utils.constants import DatabaseConfig


def _table_specs(settings):
    """(table name, hash key) for every table the service reads or writes."""
    return [
        (settings.dynamodb_meetings_table, DatabaseConfig.MEETINGS_KEY),
        (settings.dynamodb_users_table, DatabaseConfig.USERS_KEY),
        (settings.dynamodb_seeker_slots_table, DatabaseConfig.SEEKER_SLOTS_KEY),
    ]


def create_tables(dynamodb=None) -> list:
    """
    Create the DynamoDB tables if they do not exist yet (on-demand billing).

    Returns the names of the tables that were created.
    """
    settings = get_settings()
    if dynamodb is None:
        kwargs = {"region_name": settings.aws_region}
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url
        dynamodb = boto3.client("dynamodb", **kwargs)

    created = []
    for table_name, key in _table_specs(settings):
        try:
            dynamodb.create_table(
                TableName=table_name,
                KeySchema=[{"AttributeName": key, "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": key, "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
            dynamodb.get_waiter("table_exists").wait(TableName=table_name)
            print(f"Created table {table_name}")
            created.append(table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ResourceInUseException":
                print(f"Table {table_name} already exists. Skipping.")
                continue
            raise
    return created


if __name__ == "__main__":
    create_tables()
