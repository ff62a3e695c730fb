# BilanzKit - SKR04 balance sheet & P&L reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Fixed SKR04 statement taxonomy.

This module holds the static hierarchy of statement line items used by the
classifier and by the aggregation engine:

- balance sheet assets   (AKTIVA, root ``aktiva_root``),
- balance sheet equity & liabilities (PASSIVA, root ``passiva_root``),
- profit-and-loss statement, total cost method (GuV, root ``guv_root``).

Each node carries a polarity type which drives sign normalization in the
engine:

- ``ASSET`` / ``EXPENSE``     : debit-positive, shown as booked,
- ``LIABILITY`` / ``REVENUE`` : credit-positive, shown inverted,
- ``ROOT``                    : top-level container, never a target for
                                accounts.

The taxonomy is pure data; it is loaded once at import time and never
mutated.
"""

from dataclasses import dataclass
from typing import Literal, Optional

NodeType = Literal["ASSET", "LIABILITY", "REVENUE", "EXPENSE", "ROOT"]

ASSETS_ROOT = "aktiva_root"
LIABILITIES_ROOT = "passiva_root"
PROFIT_AND_LOSS_ROOT = "guv_root"

# Equity line receiving the computed annual result.
NET_RESULT_NODE = "ek_ergebnis"

# Node types whose accounts are displayed with inverted sign.
INVERTED_TYPES: frozenset[str] = frozenset({"LIABILITY", "REVENUE"})


@dataclass(frozen=True)
class StructureDefinition:
    """Definition of a single taxonomy node (one statement line).

    Attributes:
        id: Unique string key, referenced by the classifier, the override
            mapping and KPI formulas.
        label: German display label.
        type: Polarity type of the node.
        order: Display order among siblings.
        parent: Id of the parent node, None for the three roots.
    """

    id: str
    label: str
    type: NodeType
    order: int
    parent: Optional[str] = None


STRUCTURE_DEFS: tuple[StructureDefinition, ...] = (
    # --- Bilanz: Aktiva ---
    StructureDefinition(ASSETS_ROOT, "AKTIVA", "ROOT", 1),
    StructureDefinition("av", "A. Anlagevermögen", "ASSET", 10, ASSETS_ROOT),
    StructureDefinition(
        "av_immat", "I. Immaterielle Vermögensgegenstände", "ASSET", 11, "av"
    ),
    StructureDefinition("av_sach", "II. Sachanlagen", "ASSET", 12, "av"),
    StructureDefinition("av_finanz", "III. Finanzanlagen", "ASSET", 13, "av"),
    StructureDefinition("uv", "B. Umlaufvermögen", "ASSET", 20, ASSETS_ROOT),
    StructureDefinition("uv_vorrat", "I. Vorräte", "ASSET", 21, "uv"),
    StructureDefinition(
        "uv_ford",
        "II. Forderungen und sonstige Vermögensgegenstände",
        "ASSET",
        22,
        "uv",
    ),
    StructureDefinition(
        "uv_kasse",
        "III. Kassenbestand, Guthaben bei Kreditinstituten",
        "ASSET",
        23,
        "uv",
    ),
    StructureDefinition(
        "rap_akt", "C. Rechnungsabgrenzungsposten", "ASSET", 30, ASSETS_ROOT
    ),
    # --- Bilanz: Passiva ---
    StructureDefinition(LIABILITIES_ROOT, "PASSIVA", "ROOT", 2),
    StructureDefinition("ek", "A. Eigenkapital", "LIABILITY", 10, LIABILITIES_ROOT),
    StructureDefinition("ek_kapital", "I. Kapitalanteile", "LIABILITY", 11, "ek"),
    StructureDefinition(
        "ek_vortrag", "II. Gewinn-/Verlustvortrag", "LIABILITY", 12, "ek"
    ),
    StructureDefinition(NET_RESULT_NODE, "III. Jahresergebnis", "LIABILITY", 99, "ek"),
    StructureDefinition("rs", "B. Rückstellungen", "LIABILITY", 20, LIABILITIES_ROOT),
    StructureDefinition(
        "verb", "C. Verbindlichkeiten", "LIABILITY", 30, LIABILITIES_ROOT
    ),
    StructureDefinition(
        "rap_pass", "D. Rechnungsabgrenzungsposten", "LIABILITY", 40, LIABILITIES_ROOT
    ),
    # --- GuV (Gesamtkostenverfahren) ---
    StructureDefinition(PROFIT_AND_LOSS_ROOT, "Gewinn- und Verlustrechnung", "ROOT", 3),
    StructureDefinition(
        "umsatz", "1. Umsatzerlöse", "REVENUE", 10, PROFIT_AND_LOSS_ROOT
    ),
    StructureDefinition(
        "bestandsva", "2. Bestandsveränderungen", "REVENUE", 20, PROFIT_AND_LOSS_ROOT
    ),
    StructureDefinition(
        "sonst_ertrag",
        "3. Sonstige betriebliche Erträge",
        "REVENUE",
        30,
        PROFIT_AND_LOSS_ROOT,
    ),
    StructureDefinition(
        "material", "4. Materialaufwand", "EXPENSE", 40, PROFIT_AND_LOSS_ROOT
    ),
    StructureDefinition(
        "personal", "5. Personalaufwand", "EXPENSE", 50, PROFIT_AND_LOSS_ROOT
    ),
    StructureDefinition(
        "abschr", "6. Abschreibungen", "EXPENSE", 60, PROFIT_AND_LOSS_ROOT
    ),
    StructureDefinition(
        "sonst_aufw",
        "7. Sonstige betriebliche Aufwendungen",
        "EXPENSE",
        70,
        PROFIT_AND_LOSS_ROOT,
    ),
    StructureDefinition(
        "sonst_aufw_raum", "a) Raumkosten", "EXPENSE", 71, "sonst_aufw"
    ),
    StructureDefinition(
        "sonst_aufw_vers", "b) Versicherungen, Beiträge", "EXPENSE", 72, "sonst_aufw"
    ),
    StructureDefinition(
        "sonst_aufw_kfz", "c) Fahrzeugkosten", "EXPENSE", 73, "sonst_aufw"
    ),
    StructureDefinition(
        "sonst_aufw_werb", "d) Werbe- und Reisekosten", "EXPENSE", 74, "sonst_aufw"
    ),
    StructureDefinition(
        "sonst_aufw_rep", "e) Reparaturen/Instandhaltung", "EXPENSE", 75, "sonst_aufw"
    ),
    StructureDefinition(
        "sonst_aufw_rest",
        "f) Übrige betriebliche Aufwendungen",
        "EXPENSE",
        79,
        "sonst_aufw",
    ),
    StructureDefinition(
        "zinsen",
        "8. Zinsen und ähnliche Aufwendungen",
        "EXPENSE",
        80,
        PROFIT_AND_LOSS_ROOT,
    ),
    StructureDefinition(
        "steuern_er",
        "9. Steuern vom Einkommen und Ertrag",
        "EXPENSE",
        90,
        PROFIT_AND_LOSS_ROOT,
    ),
    StructureDefinition(
        "steuern_sonst", "10. Sonstige Steuern", "EXPENSE", 100, PROFIT_AND_LOSS_ROOT
    ),
)

# Fast lookup by node id.
STRUCTURE_BY_ID: dict[str, StructureDefinition] = {d.id: d for d in STRUCTURE_DEFS}


def get_definition(node_id: str) -> Optional[StructureDefinition]:
    """Return the taxonomy node with the given id, or None if unknown."""
    return STRUCTURE_BY_ID.get(node_id)


def is_assignable(node_id: str) -> bool:
    """Return True if accounts may be attached to this node.

    Root containers only aggregate their children; an account mapped to a
    root (or to an unknown id) cannot be placed in the statement.
    """
    definition = STRUCTURE_BY_ID.get(node_id)
    return definition is not None and definition.type != "ROOT"
