"""
Windows licensing status collection.

Query: SoftwareLicensingProduct (root/cimv2), products with a positive
LicenseStatus. The product with the lowest status code is reported, so a
fully licensed product wins over any grace-period one.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from .._types import UNSET, LicenseRecord, license_status_label
from ..remote.executor import WindowsExecutor
from ..remote.retrieval import ClassQuery, QueryStrategy, get_instances, primary_only
from ..utils import RemoteQueryError

logger = logging.getLogger(__name__)

LICENSING_QUERY = ClassQuery(
    class_name="SoftwareLicensingProduct",
    properties=(
        "Name",
        "Description",
        "LicenseStatus",
        "LicenseStatusReason",
        "ProductKeyChannel",
        "DiscoveredKeyManagementServiceMachineName",
    ),
    filter="LicenseStatus > 0",
)


def _as_int(value: Any, default: int = UNSET) -> int:
    if value is None or value == "":
        return default
    return int(value)


def select_license(products: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Pick the product with the lowest license status code."""
    return sorted(products, key=lambda p: _as_int(p.get("LicenseStatus")))[0]


async def collect_licensing(
    executor: WindowsExecutor,
    machine: str,
    record: LicenseRecord,
    strategies: Optional[Sequence[QueryStrategy]] = None,
) -> None:
    """
    Fill the licensing fields of record.

    Raises:
        RemoteQueryError: If the query fails or no licensed product exists
    """
    products = await get_instances(
        executor, machine, LICENSING_QUERY,
        strategies if strategies is not None else primary_only(),
    )
    if not products:
        raise RemoteQueryError(machine, LICENSING_QUERY.class_name, ["no licensing data"])

    product = select_license(products)

    # Convert everything before touching the record
    status = license_status_label(_as_int(product.get("LicenseStatus")))
    reason = _as_int(product.get("LicenseStatusReason"))

    record.license_status = status
    record.license_reason = reason
    record.license_product = product.get("Name") or ""
    record.license_description = product.get("Description") or ""
    record.product_key_channel = product.get("ProductKeyChannel") or ""
    record.kms_server = product.get("DiscoveredKeyManagementServiceMachineName") or ""

    logger.debug(f"{machine}: {record.license_product} {status}")
