"""
Redis-backed Entitlement Store.

Key layout:
- purchase:{purchase_id}  hash
    record                  canonical purchase document (JSON, see record_codec)
    purchased:{product_id}  ceiling for the line item
    downloaded:{product_id} consumption counter for the line item
- contact:{customer_contact}  sorted set of purchase ids scored by creation time

Creation and the conditional increment are Lua scripts, so each runs as one
atomic step on the Redis server. Counters live in their own hash fields and are
overlaid on the stored document when a record is read back with HGETALL.
"""

from __future__ import annotations

import json
from typing import Dict, List, Optional

from redis.exceptions import RedisError

from domain.purchase import PurchaseRecord, normalize_contact
from repositories.entitlement_store import TransientStoreError
from repositories.record_codec import document_to_purchase, purchase_to_document


_PURCHASE_PREFIX = "purchase:"
_CONTACT_PREFIX = "contact:"

# KEYS[1] purchase hash, KEYS[2] contact index
# ARGV[1] record json, ARGV[2] ttl seconds, ARGV[3] score, ARGV[4] purchase id,
# then (product_id, purchased, downloaded) triples
_CREATE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return 0
end
redis.call('HSET', KEYS[1], 'record', ARGV[1])
for i = 5, #ARGV, 3 do
    redis.call('HSET', KEYS[1], 'purchased:' .. ARGV[i], ARGV[i + 1], 'downloaded:' .. ARGV[i], ARGV[i + 2])
end
redis.call('ZADD', KEYS[2], ARGV[3], ARGV[4])
local ttl = tonumber(ARGV[2])
if ttl > 0 then
    redis.call('EXPIRE', KEYS[1], ttl)
    redis.call('EXPIRE', KEYS[2], ttl)
end
return 1
"""

# KEYS[1] purchase hash, ARGV[1] product id
_INCREMENT_SCRIPT = """
local purchased = redis.call('HGET', KEYS[1], 'purchased:' .. ARGV[1])
if not purchased then
    return 0
end
local downloaded = tonumber(redis.call('HGET', KEYS[1], 'downloaded:' .. ARGV[1]) or '0')
if downloaded >= tonumber(purchased) then
    return 0
end
redis.call('HINCRBY', KEYS[1], 'downloaded:' .. ARGV[1], 1)
return 1
"""


def purchase_key(purchase_id: str) -> str:
    return f"{_PURCHASE_PREFIX}{purchase_id}"


def contact_key(customer_contact: str) -> str:
    return f"{_CONTACT_PREFIX}{normalize_contact(customer_contact)}"


class RedisEntitlementStore:
    def __init__(self, client, retention_seconds: int = 0) -> None:
        self._client = client
        self._retention_seconds = retention_seconds
        self._create = client.register_script(_CREATE_SCRIPT)
        self._increment = client.register_script(_INCREMENT_SCRIPT)

    def put_if_absent(self, record: PurchaseRecord) -> bool:
        args: List[object] = [
            json.dumps(purchase_to_document(record)),
            self._retention_seconds,
            record.created_at.timestamp(),
            record.purchase_id,
        ]
        for item in record.line_items:
            args.extend([item.product_id, item.quantity_purchased, item.quantity_downloaded])

        try:
            created = self._create(
                keys=[purchase_key(record.purchase_id), contact_key(record.customer_contact)],
                args=args,
            )
        except RedisError as e:
            raise TransientStoreError("put_if_absent", str(e)) from e
        return int(created) == 1

    def get(self, purchase_id: str) -> Optional[PurchaseRecord]:
        try:
            fields: Dict[str, str] = self._client.hgetall(purchase_key(purchase_id))
        except RedisError as e:
            raise TransientStoreError("get", str(e)) from e

        if not fields or "record" not in fields:
            return None

        record = document_to_purchase(json.loads(fields["record"]), purchase_id=purchase_id)
        return PurchaseRecord(
            purchase_id=record.purchase_id,
            customer_contact=record.customer_contact,
            line_items=tuple(
                item.with_downloaded(int(fields.get(f"downloaded:{item.product_id}", 0)))
                for item in record.line_items
            ),
            created_at=record.created_at,
            status=record.status,
            payment_status=record.payment_status,
        )

    def conditional_increment(self, purchase_id: str, product_id: str) -> bool:
        try:
            incremented = self._increment(keys=[purchase_key(purchase_id)], args=[product_id])
        except RedisError as e:
            raise TransientStoreError("conditional_increment", str(e)) from e
        return int(incremented) == 1

    def get_by_secondary_index(self, customer_contact: str) -> List[str]:
        try:
            return list(self._client.zrevrange(contact_key(customer_contact), 0, -1))
        except RedisError as e:
            raise TransientStoreError("get_by_secondary_index", str(e)) from e


__all__ = ["RedisEntitlementStore", "contact_key", "purchase_key"]
