# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Custom account mapping for BilanzKit.

The custom mapping is a sparse override table maintained by the user
("Kontenplan"). Each entry, keyed by account number, may:

- rename the account (display name used in statements and lists),
- force the taxonomy node the account is classified into, taking precedence
  over the default SKR04 range rules.

Structured document form
------------------------
The mapping is exchanged as a JSON object::

    {
        "9000": {"name": "Saldenvorträge", "structureId": "ek_vortrag"},
        "4400": {"name": "Erlöse 19 % USt"}
    }

``node_id`` and ``structure_id`` are accepted as aliases of ``structureId``.
Converting to and from this shape is done by ``mapping_from_dict()`` and
``mapping_to_dict()``; reading and writing files is left to io.py.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

_NODE_KEYS = ("structureId", "structure_id", "node_id")


@dataclass(frozen=True)
class AccountOverride:
    """Override entry for one account.

    Attributes:
        name: Replacement display name, or None to keep the default.
        node_id: Target taxonomy node id, or None to use the range rules.
    """

    name: Optional[str] = None
    node_id: Optional[str] = None


# Sparse override table: account number -> override entry.
CustomAccountMapping = dict[str, AccountOverride]


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def mapping_from_dict(document: Mapping[str, Any]) -> CustomAccountMapping:
    """Build an override table from its structured document form.

    Account numbers are used as given (they are expected to be normalized,
    i.e. without leading zeros). Entries that are not tables are ignored, as
    are empty names or node ids.

    Raises:
        ValueError: if the document itself is not a mapping.
    """
    if not isinstance(document, Mapping):
        raise ValueError("Account mapping document must be an object keyed by account.")

    mapping: CustomAccountMapping = {}
    for account, entry in document.items():
        if not isinstance(entry, Mapping):
            continue
        node_id = None
        for key in _NODE_KEYS:
            node_id = _optional_str(entry.get(key))
            if node_id:
                break
        override = AccountOverride(
            name=_optional_str(entry.get("name")), node_id=node_id
        )
        if override.name or override.node_id:
            mapping[str(account).strip()] = override
    return mapping


def mapping_to_dict(
    mapping: Mapping[str, AccountOverride],
) -> dict[str, dict[str, str]]:
    """Return the structured document form of an override table.

    Only the fields that are set are written; accounts are sorted for a
    stable export.
    """
    document: dict[str, dict[str, str]] = {}
    for account in sorted(mapping):
        override = mapping[account]
        entry: dict[str, str] = {}
        if override.name:
            entry["name"] = override.name
        if override.node_id:
            entry["structureId"] = override.node_id
        if entry:
            document[account] = entry
    return document


def with_override(
    mapping: Mapping[str, AccountOverride],
    account: str,
    name: Optional[str] = None,
    node_id: Optional[str] = None,
) -> CustomAccountMapping:
    """Return a copy of ``mapping`` with one entry updated.

    Fields left as None keep their current value; the input mapping is not
    modified (reports are regenerated from a fresh snapshot every time).
    """
    updated = dict(mapping)
    current = updated.get(account, AccountOverride())
    updated[account] = AccountOverride(
        name=name if name is not None else current.name,
        node_id=node_id if node_id is not None else current.node_id,
    )
    return updated
