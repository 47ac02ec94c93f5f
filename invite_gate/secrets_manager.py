import json
import os
import time
import logging
from typing import Any, Dict

import boto3

logger = logging.getLogger(__name__)


class SecretsManager:
    """
    Reads deployment credentials from AWS Secrets Manager.

    Values are cached for a short TTL so that rotated credentials are picked
    up without hammering the Secrets Manager API on every settings load.
    """

    def __init__(self, region_name: str = None, cache_ttl: int = 300):
        self.region_name = region_name or os.environ.get('AWS_REGION', 'us-east-1')
        self._client = None
        self._cache: Dict[str, str] = {}
        self._cache_timestamps: Dict[str, float] = {}
        self._cache_ttl = cache_ttl

    @property
    def client(self):
        """Lazy-loaded Secrets Manager client"""
        if self._client is None:
            session = boto3.session.Session()
            self._client = session.client(
                service_name='secretsmanager',
                region_name=self.region_name
            )
        return self._client

    def clear_cache(self):
        logger.info("Clearing secrets cache")
        self._cache.clear()
        self._cache_timestamps.clear()

    def get_secret(self, secret_id: str) -> str:
        """
        Get a secret string, serving a cached copy while it is fresh.

        If the fetch fails and a stale copy exists, the stale copy is returned.
        """
        now = time.time()
        cached_at = self._cache_timestamps.get(secret_id)
        if cached_at is not None and now - cached_at < self._cache_ttl:
            logger.debug(f"Returning cached secret for {secret_id}")
            return self._cache[secret_id]

        logger.info(f"Fetching fresh secret for {secret_id}")
        try:
            response = self.client.get_secret_value(SecretId=secret_id)
        except Exception as e:
            if secret_id in self._cache:
                logger.warning(f"Fresh secret fetch failed for {secret_id}, using stale cache: {e}")
                return self._cache[secret_id]
            logger.error(f"Failed to get secret {secret_id}: {e}")
            raise

        value = response.get('SecretString') or response.get('SecretBinary')
        self._cache[secret_id] = value
        self._cache_timestamps[secret_id] = now
        return value

    def get_json_secret(self, secret_id: str) -> Dict[str, Any]:
        return json.loads(self.get_secret(secret_id))

    def get_db_credentials(self) -> Dict[str, str]:
        """
        PostgreSQL credentials in the RDS secret format
        (username, password, host, port, dbname).
        """
        return self.get_json_secret(os.environ.get('DATABASE_SECRETS_NAME', 'invite-gate/rds'))

    def get_staking_rpc_url(self) -> str:
        return self.get_secret(os.environ.get('STAKING_RPC_SECRET_NAME', 'invite-gate/staking-rpc-url'))
