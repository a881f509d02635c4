"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter
from foodstock.api.v1 import (
    auth,
    locations,
    items,
    suppliers,
    deliveries,
    issues,
    transfers,
    periods,
    approvals,
    ncrs,
    reconciliations,
    stock,
    reports,
)

api_router = APIRouter()

# Authentication routes
api_router.include_router(auth.router)

# Master data routes
api_router.include_router(locations.router)
api_router.include_router(items.router)
api_router.include_router(suppliers.router)

# Stock transaction routes
api_router.include_router(deliveries.router)
api_router.include_router(issues.router)
api_router.include_router(transfers.router)
api_router.include_router(stock.router)

# Period routes
api_router.include_router(periods.router)
api_router.include_router(approvals.router)

# NCR and reconciliation routes
api_router.include_router(ncrs.router)
api_router.include_router(reconciliations.router)
api_router.include_router(reconciliations.consolidated_router)

# Reports
api_router.include_router(reports.router)
