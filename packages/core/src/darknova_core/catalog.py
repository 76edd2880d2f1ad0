"""Static block catalog.

Hard-coded reference data used to populate selection menus and to resolve block
identifiers to display names. Not user-editable and never persisted.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Block:
    id: str
    name: str
    category: str


BLOCK_CATEGORIES: Tuple[str, ...] = (
    "Holz",
    "Stein",
    "Erze",
    "Landwirtschaft",
    "Mob-Drops",
    "Nether",
    "End",
    "Sonstiges",
)

_RAW: Tuple[Tuple[str, str, str], ...] = (
    ("oak_log", "Eichenstamm", "Holz"),
    ("spruce_log", "Fichtenstamm", "Holz"),
    ("birch_log", "Birkenstamm", "Holz"),
    ("jungle_log", "Tropenbaumstamm", "Holz"),
    ("acacia_log", "Akazienstamm", "Holz"),
    ("dark_oak_log", "Schwarzeichenstamm", "Holz"),
    ("cherry_log", "Kirschstamm", "Holz"),
    ("mangrove_log", "Mangrovenstamm", "Holz"),
    ("cobblestone", "Bruchstein", "Stein"),
    ("stone", "Stein", "Stein"),
    ("deepslate", "Tiefenschiefer", "Stein"),
    ("andesite", "Andesit", "Stein"),
    ("diorite", "Diorit", "Stein"),
    ("granite", "Granit", "Stein"),
    ("sand", "Sand", "Stein"),
    ("gravel", "Kies", "Stein"),
    ("coal", "Kohle", "Erze"),
    ("iron_ingot", "Eisenbarren", "Erze"),
    ("gold_ingot", "Goldbarren", "Erze"),
    ("copper_ingot", "Kupferbarren", "Erze"),
    ("diamond", "Diamant", "Erze"),
    ("emerald", "Smaragd", "Erze"),
    ("lapis_lazuli", "Lapislazuli", "Erze"),
    ("redstone", "Redstone", "Erze"),
    ("wheat", "Weizen", "Landwirtschaft"),
    ("carrot", "Karotte", "Landwirtschaft"),
    ("potato", "Kartoffel", "Landwirtschaft"),
    ("beetroot", "Rote Bete", "Landwirtschaft"),
    ("sugar_cane", "Zuckerrohr", "Landwirtschaft"),
    ("pumpkin", "Kürbis", "Landwirtschaft"),
    ("melon", "Melone", "Landwirtschaft"),
    ("cactus", "Kaktus", "Landwirtschaft"),
    ("bamboo", "Bambus", "Landwirtschaft"),
    ("kelp", "Seetang", "Landwirtschaft"),
    ("rotten_flesh", "Verrottetes Fleisch", "Mob-Drops"),
    ("bone", "Knochen", "Mob-Drops"),
    ("string", "Faden", "Mob-Drops"),
    ("gunpowder", "Schwarzpulver", "Mob-Drops"),
    ("spider_eye", "Spinnenauge", "Mob-Drops"),
    ("slime_ball", "Schleimball", "Mob-Drops"),
    ("ender_pearl", "Enderperle", "Mob-Drops"),
    ("netherrack", "Netherrack", "Nether"),
    ("quartz", "Netherquarz", "Nether"),
    ("glowstone", "Leuchtstein", "Nether"),
    ("nether_wart", "Netherwarze", "Nether"),
    ("blaze_rod", "Lohenrute", "Nether"),
    ("end_stone", "Endstein", "End"),
    ("purpur_block", "Purpurblock", "End"),
    ("chorus_fruit", "Chorusfrucht", "End"),
    ("obsidian", "Obsidian", "Sonstiges"),
    ("glass", "Glas", "Sonstiges"),
    ("white_wool", "Weiße Wolle", "Sonstiges"),
    ("clay_ball", "Tonklumpen", "Sonstiges"),
    ("ice", "Eis", "Sonstiges"),
)

BLOCKS: Tuple[Block, ...] = tuple(Block(id=i, name=n, category=c) for i, n, c in _RAW)
_BY_ID: Dict[str, Block] = {b.id: b for b in BLOCKS}


def get_block_by_id(block_id: str) -> Optional[Block]:
    return _BY_ID.get(block_id)


def get_blocks_by_category(category: str) -> List[Block]:
    return [b for b in BLOCKS if b.category == category]


def block_name(block_id: str) -> str:
    """Display name for ``block_id``; unknown identifiers are shown as-is."""
    block = _BY_ID.get(block_id)
    return block.name if block else block_id


def is_known_block(block_id: str) -> bool:
    return block_id in _BY_ID


__all__ = [
    "Block",
    "BLOCKS",
    "BLOCK_CATEGORIES",
    "get_block_by_id",
    "get_blocks_by_category",
    "block_name",
    "is_known_block",
]
