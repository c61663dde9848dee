"""
FastAPI routers for the CRM API.

Each module exposes an ``APIRouter`` that ``advisor_crm.main`` registers.
"""
