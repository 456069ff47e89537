from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from realtyflow.database import get_db
from realtyflow.db_models import PropertyStatus, PropertyType
from realtyflow.models import PropertyCreate, PropertyOut, PropertyUpdate, dump, page
from realtyflow.services import PropertyService

router = APIRouter(prefix="/api/properties", tags=["Properties"])


# GET /api/properties
# Gets: query params status?, type?, minPrice?, maxPrice?, sortBy?, sortOrder?, page?, limit?
# Returns: {success, count, total, totalPages, currentPage, data: [Property]}
# Example:
#   curl 'http://localhost:8000/api/properties?status=Available&minPrice=300000'
@router.get("")
async def list_properties(
    status: Optional[PropertyStatus] = None,
    property_type: Optional[PropertyType] = Query(None, alias="type"),
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page_number: int = Query(1, alias="page", ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """List properties with filters and pagination."""
    props, total = PropertyService.list_properties(
        db, status=status, property_type=property_type, min_price=min_price, max_price=max_price,
        sort_by=sort_by, sort_order=sort_order, page=page_number, limit=limit,
    )
    return page([dump(PropertyOut, p) for p in props], total, page_number, limit)


# POST /api/properties
# Gets: JSON body Property {address, price, bedrooms?, bathrooms?, sqft?, propertyType?, status?, ...}
# Returns: 201 {success, message, data: Property}
# Example:
#   curl -X POST http://localhost:8000/api/properties -H 'Content-Type: application/json' \
#     -d '{"address": "12 Elm St, Springfield", "price": 425000, "bedrooms": 3, "sqft": 1800}'
@router.post("", status_code=201)
async def create_property(payload: PropertyCreate, db: Session = Depends(get_db)):
    """Add a property listing."""
    prop = PropertyService.create_property(db, payload.model_dump(mode="json"))
    return {"success": True, "message": "Property created successfully", "data": dump(PropertyOut, prop)}


# GET /api/properties/{property_id}
# Gets: path param property_id
# Returns: {success, data: Property}; 404 if unknown
# Example:
#   curl http://localhost:8000/api/properties/1
@router.get("/{property_id}")
async def get_property(property_id: int, db: Session = Depends(get_db)):
    """Fetch one property."""
    return {"success": True, "data": dump(PropertyOut, PropertyService.require_property(db, property_id))}


# PUT /api/properties/{property_id}
# Gets: path param property_id, JSON body with any Property fields
# Returns: {success, message, data: Property}
# Example:
#   curl -X PUT http://localhost:8000/api/properties/1 -H 'Content-Type: application/json' -d '{"status": "Pending"}'
@router.put("/{property_id}")
async def update_property(property_id: int, payload: PropertyUpdate, db: Session = Depends(get_db)):
    """Update a property listing."""
    prop = PropertyService.update_property(db, property_id, payload.model_dump(mode="json", exclude_unset=True))
    return {"success": True, "message": "Property updated successfully", "data": dump(PropertyOut, prop)}


# DELETE /api/properties/{property_id}
# Gets: path param property_id
# Returns: {success, message}
# Example:
#   curl -X DELETE http://localhost:8000/api/properties/1
@router.delete("/{property_id}")
async def delete_property(property_id: int, db: Session = Depends(get_db)):
    """Delete a property listing."""
    PropertyService.delete_property(db, property_id)
    return {"success": True, "message": "Property deleted successfully"}
