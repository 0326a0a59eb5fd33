"""Quoting adapters for the supported DEX families."""

import logging
from typing import List, Optional

from ...types import DexFamily, DexKind
from .base import ContractReader, DexAdapter
from .curve import CurveAdapter
from .v2 import UniswapV2Adapter, swap_out
from .v3 import UniswapV3Adapter, V3_FEE_TIERS, decode_v3_path, encode_v3_path

logger = logging.getLogger(__name__)


def build_adapter(settings, reader: ContractReader) -> Optional[DexAdapter]:
    """
    Create the quoting adapter for one configured DEX.

    Returns None for families that have no quoting backend (Maverick and
    the universal router are decode/encode only) or when quoting is
    disabled for the entry.
    """
    if not settings.quote:
        return None

    kind = DexKind.from_name(settings.kind)
    family = kind.family
    if family is DexFamily.V2:
        return UniswapV2Adapter(
            settings.name, kind, settings.router, reader, gas_estimate=settings.gas_estimate
        )
    if family is DexFamily.V3:
        return UniswapV3Adapter(
            settings.name,
            kind,
            settings.router,
            reader,
            fee=settings.fee,
            quoter=settings.quoter,
            pool=settings.pool,
            gas_estimate=settings.gas_estimate,
        )
    if family is DexFamily.CURVE:
        return CurveAdapter(
            settings.name, settings.router, settings.coins, reader,
            gas_estimate=settings.gas_estimate,
        )

    logger.info(f"No quoting backend for {settings.name} ({kind.value}); decode only")
    return None


def build_adapters(dex_settings, reader: ContractReader) -> List[DexAdapter]:
    adapters = []
    for settings in dex_settings:
        adapter = build_adapter(settings, reader)
        if adapter is not None:
            adapters.append(adapter)
    return adapters


__all__ = [
    "ContractReader",
    "CurveAdapter",
    "DexAdapter",
    "UniswapV2Adapter",
    "UniswapV3Adapter",
    "V3_FEE_TIERS",
    "build_adapter",
    "build_adapters",
    "decode_v3_path",
    "encode_v3_path",
    "swap_out",
]
