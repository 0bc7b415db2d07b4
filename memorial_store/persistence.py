"""
Persistence client for the hosted relational store and photo storage.

Tables are reached through the store's PostgREST HTTP API with ``requests``;
photos go to the S3-compatible storage endpoint with boto3. Reads raise
``NotFoundError`` when nothing matches, writes raise ``PersistenceError``
carrying the service's own message, and transport failures raise
``ServiceUnavailableError``. Nothing here retries.
"""
import logging
import mimetypes
import os
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError
from pydantic_core import to_jsonable_python

from memorial_store.config import Config
from memorial_store.exceptions import NotFoundError, PersistenceError, ServiceUnavailableError
from memorial_store.models import (
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductFormat,
    ProductTheme,
    ProductType,
    Profile,
    Review,
)

logger = logging.getLogger(__name__)

PRODUCT_WITH_OPTIONS_SELECT = ",".join([
    "*",
    "product_type:product_types(*)",
    "product_formats:product_product_formats(product_format:product_formats(*))",
    "product_sizes:product_product_sizes(product_size:product_sizes(*))",
    "product_finishes:product_product_finishes(product_finish:product_finishes(*))",
    "product_themes:product_product_themes(product_theme:product_themes(*))",
    "preset_texts:product_preset_texts(preset_text:preset_texts(*))",
])

# relation name -> key of the nested row inside each join row
_OPTION_RELATIONS = {
    "product_formats": "product_format",
    "product_sizes": "product_size",
    "product_finishes": "product_finish",
    "product_themes": "product_theme",
    "preset_texts": "preset_text",
}


def photo_object_key(folder: str, filename: str) -> str:
    """Storage key: folder prefix, millisecond timestamp, random suffix, original extension"""
    ext = os.path.splitext(filename)[1].lstrip(".").lower() or "bin"
    suffix = secrets.token_hex(4)
    return f"{folder}/{int(time.time() * 1000)}-{suffix}.{ext}"


class PersistenceClient:
    """Thin accessor over the hosted database and its object storage"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        storage_client=None,
        timeout: Optional[float] = None
    ):
        self.base_url = (base_url or Config.SUPABASE_URL).rstrip("/")
        self.api_key = api_key or Config.SUPABASE_SERVICE_ROLE_KEY or ""
        self.session = session or requests.Session()
        self.timeout = timeout or Config.PERSISTENCE_TIMEOUT_SECONDS
        self._storage = storage_client

    # ----- HTTP plumbing -----

    @property
    def storage(self):
        """S3 client for the photo bucket, created on first use"""
        if self._storage is None:
            self._storage = boto3.client(
                "s3",
                endpoint_url=Config.STORAGE_ENDPOINT_URL,
                aws_access_key_id=Config.STORAGE_ACCESS_KEY_ID,
                aws_secret_access_key=Config.STORAGE_SECRET_ACCESS_KEY,
                region_name=Config.REGION
            )
        return self._storage

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _error_from(self, response: requests.Response) -> PersistenceError:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error") or response.text
            code = body.get("code")
        else:
            message = response.text or response.reason
            code = None
        return PersistenceError(message, status_code=response.status_code, code=code)

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        payload: Any = None,
        prefer: Optional[str] = None
    ) -> Any:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=to_jsonable_python(payload) if payload is not None else None,
                headers=self._headers(prefer),
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ServiceUnavailableError(f"Database request failed: {e}")

        if response.status_code >= 400:
            error = self._error_from(response)
            logger.error(
                f"Database error on {method} {table}: {error.message}",
                extra={"table": table, "status_code": response.status_code, "code": error.code}
            )
            raise error

        if not response.content:
            return []
        return response.json()

    def _select(
        self,
        table: str,
        select: str = "*",
        filters: Optional[Dict[str, str]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        params = {"select": select}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        return self._request("GET", table, params=params) or []

    def _select_one(self, table: str, resource: str, identifier: str, select: str = "*") -> Dict[str, Any]:
        rows = self._select(table, select=select, filters={"id": identifier}, limit=1)
        if not rows:
            raise NotFoundError(resource, identifier)
        return rows[0]

    def _insert(self, table: str, rows: Any) -> List[Dict[str, Any]]:
        return self._request("POST", table, payload=rows, prefer="return=representation") or []

    # ----- Catalog reads -----

    def get_product_types(self) -> List[ProductType]:
        rows = self._select("product_types", order="name")
        return [ProductType.model_validate(row) for row in rows]

    def get_products_by_type(self, type_id: str) -> List[Product]:
        rows = self._select(
            "products",
            select="*,product_type:product_types(*)",
            filters={"product_type_id": type_id},
            order="name"
        )
        return [Product.model_validate(row) for row in rows]

    def get_product(self, product_id: str) -> Product:
        return Product.model_validate(self._select_one("products", "Product", product_id))

    def get_product_with_options(self, product_id: str) -> Product:
        """Product with its type and every option list flattened"""
        row = self._select_one("products", "Product", product_id, select=PRODUCT_WITH_OPTIONS_SELECT)
        for relation, nested_key in _OPTION_RELATIONS.items():
            row[relation] = [
                link[nested_key] for link in (row.get(relation) or [])
                if link.get(nested_key)
            ]
        return Product.model_validate(row)

    def get_themes(self) -> List[ProductTheme]:
        rows = self._select("product_themes", order="name")
        return [ProductTheme.model_validate(row) for row in rows]

    def get_formats(self) -> List[ProductFormat]:
        rows = self._select("product_formats", order="name")
        return [ProductFormat.model_validate(row) for row in rows]

    # ----- Orders -----

    def get_order(self, order_id: str) -> Order:
        return Order.model_validate(self._select_one("orders", "Order", order_id))

    def get_order_items(self, order_id: str) -> List[OrderItem]:
        rows = self._select("order_items", filters={"order_id": order_id}, order="created_at")
        return [OrderItem.model_validate(row) for row in rows]

    def create_order(self, order: Dict[str, Any]) -> Order:
        rows = self._insert("orders", order)
        if not rows:
            raise PersistenceError("Order insert returned no rows")
        return Order.model_validate(rows[0])

    def create_order_items(self, items: List[Dict[str, Any]]) -> List[OrderItem]:
        rows = self._insert("order_items", items)
        return [OrderItem.model_validate(row) for row in rows]

    def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        rows = self._request(
            "PATCH",
            "orders",
            params={"id": f"eq.{order_id}"},
            payload={
                "status": status.value,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            prefer="return=representation"
        )
        if not rows:
            raise NotFoundError("Order", order_id)
        return Order.model_validate(rows[0])

    # ----- Profiles and reviews -----

    def create_profile(self, email: str, full_name: Optional[str] = None) -> Profile:
        rows = self._insert("profiles", {"email": email, "full_name": full_name})
        if not rows:
            raise PersistenceError("Profile insert returned no rows")
        return Profile.model_validate(rows[0])

    def create_review(
        self,
        order_id: str,
        rating: int,
        comment: Optional[str] = None,
        author_name: Optional[str] = None
    ) -> Review:
        rows = self._insert("reviews", {
            "order_id": order_id,
            "rating": rating,
            "comment": comment,
            "author_name": author_name,
        })
        if not rows:
            raise PersistenceError("Review insert returned no rows")
        return Review.model_validate(rows[0])

    # ----- Photo storage -----

    def public_url(self, key: str) -> str:
        return f"{Config.STORAGE_PUBLIC_URL.rstrip('/')}/{Config.STORAGE_BUCKET}/{key}"

    def upload_photo(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
        folder: Optional[str] = None
    ) -> str:
        """Upload one photo and return its public URL"""
        key = photo_object_key(folder or Config.PHOTO_FOLDER, filename)
        content_type = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        try:
            self.storage.put_object(
                Bucket=Config.STORAGE_BUCKET,
                Key=key,
                Body=content,
                ContentType=content_type
            )
        except ClientError as e:
            message = e.response.get("Error", {}).get("Message") or str(e)
            raise PersistenceError(message, code=e.response.get("Error", {}).get("Code"))
        except BotoCoreError as e:
            raise ServiceUnavailableError(f"Storage request failed: {e}")
        return self.public_url(key)

    def upload_photos(
        self,
        files: Iterable[Tuple[bytes, str, Optional[str]]],
        folder: Optional[str] = None
    ) -> List[str]:
        """Upload (content, filename, content_type) triples in order"""
        return [
            self.upload_photo(content, filename, content_type, folder)
            for content, filename, content_type in files
        ]


# Global persistence client instance
_persistence_client: Optional[PersistenceClient] = None


def get_persistence_client() -> PersistenceClient:
    """Get or create the persistence client (singleton)"""
    global _persistence_client
    if _persistence_client is None:
        _persistence_client = PersistenceClient()
    return _persistence_client


def set_persistence_client(client) -> None:
    """Override the persistence client (useful for tests)"""
    global _persistence_client
    _persistence_client = client
