"""
Idempotent find-or-create of products and prices on the remote platform.

A product is looked up by the source identifier stored in its metadata
before one is ever created. Products created by earlier tooling that
lack the metadata tag can optionally be matched by name and are then
tagged, so later runs find them through metadata.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from catalog_migrator.models.config import NameFallbackPolicy
from catalog_migrator.models.product import ValidatedProduct
from catalog_migrator.services.stripe_client import StripeClient, escape_search_value
from catalog_migrator.utils.circuit_breaker import OperationContext
from catalog_migrator.utils.exceptions import ConflictError, NotFoundError
from catalog_migrator.utils.hash import idempotency_key
from catalog_migrator.utils.retry import RetryHandler

logger = structlog.get_logger()

DRY_RUN_PRODUCT_PREFIX = "prod_dryrun_"
DRY_RUN_PRICE_PREFIX = "price_dryrun_"
PRICE_LIST_LIMIT = 10


@dataclass
class RemoteIds:
    """Remote identifiers resolved for one product"""

    product_id: str
    price_id: str
    product_created: bool = False


class RemoteSyncService:
    """
    Find-or-create operations against the remote platform.

    All calls go through the remote RetryHandler. In dry-run mode
    lookups still run but create/update calls return synthetic ids
    without any network effect.
    """

    def __init__(
        self,
        client: StripeClient,
        retry_handler: RetryHandler,
        metadata_key: str = "supabase_id",
        name_fallback: NameFallbackPolicy = NameFallbackPolicy.EXACT_UNIQUE,
        name_search_limit: int = 5,
        dry_run: bool = False,
        run_id: str = "default",
    ):
        """
        Initialize remote sync service.

        Args:
            client: HTTP client for the remote platform
            retry_handler: Retry handler shared by all remote calls
            metadata_key: Metadata key carrying the source identifier
            name_fallback: Policy for products found only by name
            name_search_limit: Max candidates fetched by the name search
            dry_run: Short-circuit create/update calls
            run_id: Scope of the Idempotency-Key headers sent on create
        """
        self.client = client
        self.retry = retry_handler
        self.metadata_key = metadata_key
        self.name_fallback = NameFallbackPolicy(name_fallback)
        self.name_search_limit = name_search_limit
        self.dry_run = dry_run
        self.run_id = run_id

    async def find_existing(self, product: ValidatedProduct) -> Optional[str]:
        """
        Find the remote product for a validated product.

        Returns:
            Remote product id, or None if no trusted match exists
        """
        query = (
            f'metadata["{self.metadata_key}"]:'
            f'"{escape_search_value(product.source_id)}"'
        )
        matches = await self.retry.execute_with_retry(
            lambda: self.client.search_products(query, limit=1),
            OperationContext.FIND_PRODUCT_BY_METADATA,
        )
        if matches:
            logger.debug(
                "product_found_by_metadata",
                source_id=product.source_id,
                product_id=matches[0]["id"],
            )
            return matches[0]["id"]

        if self.name_fallback == NameFallbackPolicy.DISABLED:
            return None

        product_id = await self._find_by_name(product)
        if product_id is not None:
            await self._adopt(product_id, product)
        return product_id

    async def _find_by_name(self, product: ValidatedProduct) -> Optional[str]:
        query = f'name:"{escape_search_value(product.name)}"'
        results = await self.retry.execute_with_retry(
            lambda: self.client.search_products(query, limit=self.name_search_limit),
            OperationContext.FIND_PRODUCT_BY_NAME,
        )
        # Products already tagged for another source record are never candidates
        candidates = [r for r in results if self._is_untagged_or_ours(r, product)]
        exact = [r for r in candidates if r.get("name") == product.name]

        if self.name_fallback == NameFallbackPolicy.EXACT_UNIQUE:
            if len(exact) == 1:
                return self._log_name_match(product, exact[0]["id"], "exact_unique")
            if len(exact) > 1:
                logger.warning(
                    "ambiguous_name_match",
                    source_id=product.source_id,
                    name=product.name,
                    candidates=[r["id"] for r in exact],
                )
            return None

        # FIRST_MATCH
        if exact:
            return self._log_name_match(product, exact[0]["id"], "exact")
        if candidates:
            return self._log_name_match(product, candidates[0]["id"], "first_result")
        return None

    def _is_untagged_or_ours(self, remote: Dict[str, Any], product: ValidatedProduct) -> bool:
        tagged = (remote.get("metadata") or {}).get(self.metadata_key)
        return tagged in (None, "", product.source_id)

    @staticmethod
    def _log_name_match(product: ValidatedProduct, product_id: str, match: str) -> str:
        logger.info(
            "product_found_by_name",
            source_id=product.source_id,
            product_id=product_id,
            match=match,
        )
        return product_id

    async def _adopt(self, product_id: str, product: ValidatedProduct) -> None:
        """Tag a name-matched product with the source identifier"""
        if self.dry_run:
            logger.info("dry_run_adopt_skipped", product_id=product_id)
            return
        await self.retry.execute_with_retry(
            lambda: self.client.update_product(
                product_id, {"metadata": {self.metadata_key: product.source_id}}
            ),
            OperationContext.UPDATE_PRODUCT,
        )

    async def create(self, product: ValidatedProduct) -> str:
        """
        Create the remote product.

        A conflict response is resolved through the metadata lookup.

        Returns:
            Remote product id (synthetic in dry-run mode)
        """
        if self.dry_run:
            synthetic = f"{DRY_RUN_PRODUCT_PREFIX}{product.source_id}"
            logger.info("dry_run_create_product", source_id=product.source_id)
            return synthetic

        payload: Dict[str, Any] = {
            "name": product.name,
            "description": product.description,
            "metadata": dict(product.metadata),
            "active": product.active,
        }
        if product.images:
            payload["images"] = list(product.images)

        key = idempotency_key(product.source_id, f"product:{self.run_id}")
        try:
            created = await self.retry.execute_with_retry(
                lambda: self.client.create_product(payload, idempotency_key=key),
                OperationContext.CREATE_PRODUCT,
            )
        except ConflictError:
            existing = await self.find_existing(product)
            if existing is None:
                raise
            logger.info(
                "create_conflict_resolved",
                source_id=product.source_id,
                product_id=existing,
            )
            return existing

        logger.info(
            "product_created", source_id=product.source_id, product_id=created["id"]
        )
        return created["id"]

    async def find_or_create_price(
        self, remote_product_id: str, product: ValidatedProduct
    ) -> str:
        """
        Reuse an active price with the same amount and currency, or create one.

        Returns:
            Remote price id (synthetic in dry-run mode)
        """
        synthetic = f"{DRY_RUN_PRICE_PREFIX}{product.source_id}"
        if self.dry_run and remote_product_id.startswith(DRY_RUN_PRODUCT_PREFIX):
            return synthetic

        prices: List[Dict[str, Any]] = await self.retry.execute_with_retry(
            lambda: self.client.list_prices(
                remote_product_id, active=True, limit=PRICE_LIST_LIMIT
            ),
            OperationContext.FIND_PRICE,
        )
        for price in prices:
            if (
                price.get("unit_amount") == product.unit_amount
                and str(price.get("currency", "")).lower() == product.currency
            ):
                return price["id"]

        if self.dry_run:
            return synthetic

        metadata = {self.metadata_key: product.source_id}
        if product.original_price:
            metadata["original_price"] = product.original_price
        payload = {
            "product": remote_product_id,
            "unit_amount": product.unit_amount,
            "currency": product.currency,
            "active": product.active,
            "metadata": metadata,
        }
        key = idempotency_key(product.source_id, f"price:{self.run_id}")
        created = await self.retry.execute_with_retry(
            lambda: self.client.create_price(payload, idempotency_key=key),
            OperationContext.CREATE_PRICE,
        )
        logger.info(
            "price_created",
            source_id=product.source_id,
            product_id=remote_product_id,
            price_id=created["id"],
        )
        return created["id"]

    async def find_or_create(self, product: ValidatedProduct) -> RemoteIds:
        existing = await self.find_existing(product)
        if existing is not None:
            product_id = existing
            created = False
        else:
            product_id = await self.create(product)
            created = True
        price_id = await self.find_or_create_price(product_id, product)
        return RemoteIds(product_id=product_id, price_id=price_id, product_created=created)

    async def verify_product(self, remote_product_id: str) -> bool:
        """Confirm a product id exists on the remote platform"""
        try:
            remote = await self.retry.execute_with_retry(
                lambda: self.client.retrieve_product(remote_product_id),
                OperationContext.RETRIEVE_PRODUCT,
            )
        except NotFoundError:
            return False
        return remote.get("id") == remote_product_id

    async def ping(self) -> None:
        """Preflight check of remote connectivity and credentials"""
        await self.client.ping()
