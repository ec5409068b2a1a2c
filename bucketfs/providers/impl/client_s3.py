from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional

import boto3
import httpx
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from bucketfs.core.errors import ObjectStoreError
from bucketfs.core.settings import BucketSettings, get_settings
from bucketfs.providers.object_client import (
    PROJECT_PRIVATE_ACL,
    PUBLIC_READ_ACL,
    ObjectAcl,
    ObjectStoreClient,
    StoredObject,
)

logger = logging.getLogger(__name__)

_CANNED_ACLS = {
    PROJECT_PRIVATE_ACL: "private",
    "private": "private",
    PUBLIC_READ_ACL: "public-read",
    "authenticated-read": "authenticated-read",
    "bucket-owner-full-control": "bucket-owner-full-control",
}

_GROUP_GRANTEES = {
    "allUsers": "uri=http://acs.amazonaws.com/groups/global/AllUsers",
    "allAuthenticatedUsers": "uri=http://acs.amazonaws.com/groups/global/AuthenticatedUsers",
}

_ROLE_GRANTS = {
    "READER": "GrantRead",
    "OWNER": "GrantFullControl",
}


def _wrap(exc: Exception, what: str) -> ObjectStoreError:
    if isinstance(exc, ClientError):
        err = exc.response.get("Error") or {}
        meta = exc.response.get("ResponseMetadata") or {}
        code = str(err.get("Code") or "")
        status = meta.get("HTTPStatusCode")
        return ObjectStoreError(f"{what}: {err.get('Message') or code or exc}", code=code, status=status)
    return ObjectStoreError(f"{what}: {exc}")


def _to_stored_object(name: str, resp: Dict[str, Any]) -> StoredObject:
    return StoredObject(
        name=name,
        size=int(resp.get("ContentLength") or resp.get("Size") or 0),
        updated=resp.get("LastModified"),
        metadata=dict(resp.get("Metadata") or {}),
        cache_control=resp.get("CacheControl"),
        content_type=resp.get("ContentType"),
    )


def _grant_kwargs(acl: ObjectAcl) -> Dict[str, str]:
    if acl.entity == "allUsers" and acl.role == "READER":
        return {"ACL": "public-read"}

    grant = _ROLE_GRANTS.get(acl.role)
    if not grant:
        raise ObjectStoreError(f"unsupported ACL role {acl.role!r}", code="UnsupportedAcl")

    grantee = _GROUP_GRANTEES.get(acl.entity)
    if grantee is None:
        entity = acl.entity
        if entity.startswith("user-"):
            entity = entity[len("user-"):]
        grantee = f"emailAddress={entity}" if "@" in entity else f"id={entity}"
    return {grant: grantee}


class S3ObjectStoreClient(ObjectStoreClient):
    """
    ObjectStoreClient over S3-compatible storage (AWS S3, MinIO, ...).

    Uses boto3 credential resolution; endpoint_url switches to a
    non-AWS endpoint. Content reads go through a presigned GET fetched
    with httpx.

    Every botocore/httpx failure is re-raised as ObjectStoreError.
    """

    def __init__(
        self,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        presign_ttl_seconds: int = 900,
        http_timeout_seconds: float = 30.0,
        max_attempts: int = 5,
        s3: Any = None,
        http: Optional[httpx.Client] = None,
    ):
        self.region = region
        self.endpoint_url = endpoint_url
        self.presign_ttl_seconds = max(1, int(presign_ttl_seconds))

        if s3 is None:
            cfg = Config(
                retries={"max_attempts": max_attempts, "mode": "standard"},
                region_name=region,
            )
            s3 = boto3.client("s3", config=cfg, endpoint_url=endpoint_url)
        self.s3 = s3
        self.http = http or httpx.Client(timeout=http_timeout_seconds)

    @classmethod
    def from_settings(cls, settings: BucketSettings) -> "S3ObjectStoreClient":
        return cls(
            region=settings.region,
            endpoint_url=settings.endpoint_url,
            presign_ttl_seconds=settings.presign_ttl_seconds,
            http_timeout_seconds=settings.http_timeout_seconds,
            max_attempts=settings.max_attempts,
        )

    @classmethod
    def from_env(cls) -> "S3ObjectStoreClient":
        return cls.from_settings(get_settings())

    # ----------------------------
    # Buckets
    # ----------------------------
    def get_bucket(self, bucket: str) -> Dict[str, Any]:
        try:
            resp = self.s3.head_bucket(Bucket=bucket)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, f"head_bucket {bucket}") from exc
        headers = (resp.get("ResponseMetadata") or {}).get("HTTPHeaders") or {}
        return {"name": bucket, "region": headers.get("x-amz-bucket-region")}

    def create_bucket(self, bucket: str) -> None:
        kwargs: Dict[str, Any] = {"Bucket": bucket}
        # us-east-1 rejects an explicit LocationConstraint
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self.s3.create_bucket(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, f"create_bucket {bucket}") from exc
        logger.info("[ObjectStore] created bucket=%s region=%s", bucket, self.region)

    # ----------------------------
    # Objects
    # ----------------------------
    def get_object(self, bucket: str, path: str) -> StoredObject:
        try:
            resp = self.s3.head_object(Bucket=bucket, Key=path)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, f"head_object {bucket}/{path}") from exc
        return _to_stored_object(path, resp)

    def insert_object(self, bucket: str, obj: StoredObject, data: bytes) -> StoredObject:
        kwargs: Dict[str, Any] = {
            "Bucket": bucket,
            "Key": obj.name,
            "Body": data,
            "ContentType": obj.content_type or "application/octet-stream",
        }
        if obj.metadata:
            # S3 metadata keys must be strings
            kwargs["Metadata"] = {str(kk): str(vv) for kk, vv in obj.metadata.items()}
        if obj.cache_control:
            kwargs["CacheControl"] = obj.cache_control
        if obj.acl:
            kwargs["ACL"] = _CANNED_ACLS.get(obj.acl, obj.acl)

        try:
            self.s3.put_object(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, f"put_object {bucket}/{obj.name}") from exc

        return StoredObject(
            name=obj.name,
            size=len(data),
            metadata=dict(obj.metadata),
            cache_control=obj.cache_control,
            acl=obj.acl,
            content_type=kwargs["ContentType"],
        )

    def copy_object(
        self,
        source_bucket: str,
        source_path: str,
        target_bucket: str,
        target_path: str,
        obj: StoredObject,
    ) -> StoredObject:
        try:
            self.s3.copy_object(
                Bucket=target_bucket,
                Key=target_path,
                CopySource={"Bucket": source_bucket, "Key": source_path},
                MetadataDirective="COPY",
            )
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, f"copy_object {source_bucket}/{source_path} -> {target_bucket}/{target_path}") from exc
        return obj.renamed(target_path)

    def delete_object(self, bucket: str, path: str) -> None:
        try:
            self.s3.delete_object(Bucket=bucket, Key=path)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, f"delete_object {bucket}/{path}") from exc

    def list_objects(self, bucket: str, prefix: Optional[str] = None) -> Iterator[StoredObject]:
        kwargs: Dict[str, Any] = {"Bucket": bucket}
        if prefix:
            kwargs["Prefix"] = prefix

        try:
            for page in self.s3.get_paginator("list_objects_v2").paginate(**kwargs):
                for item in page.get("Contents") or []:
                    yield _to_stored_object(item["Key"], item)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, f"list_objects_v2 {bucket}") from exc

    def insert_object_acl(self, bucket: str, path: str, acl: ObjectAcl) -> None:
        kwargs = _grant_kwargs(acl)
        try:
            self.s3.put_object_acl(Bucket=bucket, Key=path, **kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, f"put_object_acl {bucket}/{path}") from exc

    def signed_get(self, bucket: str, path: str) -> httpx.Response:
        try:
            url = self.s3.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket, "Key": path},
                ExpiresIn=self.presign_ttl_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, f"presign get_object {bucket}/{path}") from exc

        try:
            return self.http.get(url)
        except httpx.HTTPError as exc:
            raise ObjectStoreError(f"GET {bucket}/{path}: {exc}", code=type(exc).__name__) from exc
