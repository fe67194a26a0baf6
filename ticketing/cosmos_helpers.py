"""
Cosmos helpers: process-wide CosmosClient and container lookup.

The ticketing container (counters + incidents, partitioned by series) can be
created through ARM on first use when AZURE_SUBSCRIPTION_ID and
AZURE_RESOURCE_GROUP are set; otherwise it must already exist.

Used by: stores.cosmos_nosql, main (shutdown)
"""

from __future__ import annotations

import logging
import os

from azure.cosmos import ContainerProxy, CosmosClient

from ticketing.adapters.cosmos_config import COSMOS_NOSQL_ENDPOINT
from ticketing.config import get_credential

logger = logging.getLogger("ticketing.cosmos")

_cosmos_client: CosmosClient | None = None
_containers: dict[tuple[str, str], ContainerProxy] = {}


def get_cosmos_client() -> CosmosClient:
    """Cached data-plane CosmosClient.

    Raises RuntimeError (not HTTPException) so a misconfigured endpoint
    fails app start-up with a readable message.
    """
    global _cosmos_client
    if _cosmos_client is None:
        if not COSMOS_NOSQL_ENDPOINT:
            raise RuntimeError("COSMOS_NOSQL_ENDPOINT not configured")
        _cosmos_client = CosmosClient(url=COSMOS_NOSQL_ENDPOINT, credential=get_credential())
    return _cosmos_client


def close_cosmos_client() -> None:
    global _cosmos_client
    if _cosmos_client is None:
        return
    try:
        _cosmos_client.close()
    except Exception:
        logger.debug("CosmosClient close failed", exc_info=True)
    _cosmos_client = None
    _containers.clear()


def get_or_create_container(
    db_name: str,
    container_name: str,
    partition_key_path: str,
    *,
    ensure_created: bool = False,
) -> ContainerProxy:
    """Return the container proxy, creating the container via ARM if asked.

    The database itself is never created here.
    """
    key = (db_name, container_name)
    if key not in _containers:
        if ensure_created:
            _ensure_container_via_arm(db_name, container_name, partition_key_path)
        database = get_cosmos_client().get_database_client(db_name)
        _containers[key] = database.get_container_client(container_name)
    return _containers[key]


def _ensure_container_via_arm(db_name: str, container_name: str, pk_path: str) -> None:
    sub_id = os.environ.get("AZURE_SUBSCRIPTION_ID", "")
    rg = os.environ.get("AZURE_RESOURCE_GROUP", "")
    if not (sub_id and rg):
        logger.info(
            "AZURE_SUBSCRIPTION_ID/AZURE_RESOURCE_GROUP not set; assuming %s/%s exists",
            db_name, container_name,
        )
        return

    from azure.core.exceptions import ResourceNotFoundError
    from azure.mgmt.cosmosdb import CosmosDBManagementClient

    account = COSMOS_NOSQL_ENDPOINT.replace("https://", "").split(".")[0]
    mgmt = CosmosDBManagementClient(get_credential(), sub_id)
    try:
        # Partition keys are immutable: never "update" an existing container.
        mgmt.sql_resources.get_sql_container(rg, account, db_name, container_name)
        logger.debug("Container %s/%s already exists", db_name, container_name)
        return
    except ResourceNotFoundError:
        pass

    try:
        mgmt.sql_resources.begin_create_update_sql_container(
            rg, account, db_name, container_name,
            {
                "resource": {
                    "id": container_name,
                    "partitionKey": {"paths": [pk_path], "kind": "Hash", "version": 2},
                }
            },
        ).result()
        logger.info("Created container %s/%s (pk=%s)", db_name, container_name, pk_path)
    except Exception as e:
        if "Conflict" not in str(e):
            logger.warning("ARM container creation failed: %s", e)
