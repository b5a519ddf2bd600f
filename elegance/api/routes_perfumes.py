from fastapi import APIRouter, Depends
from typing import Optional
from sqlalchemy.orm import Session

from elegance.api.deps import get_db, require_capability
from elegance.api.schemas import PerfumeCreate, PerfumeRead, RestockPayload
from elegance.core.errors import PerfumeNotFound
from elegance.core.security import Capability
from elegance.db.models import Category, User
from elegance.store import catalog

router = APIRouter()

def _out(obj) -> dict:
    return PerfumeRead.model_validate(obj).model_dump(mode="json", by_alias=True)

@router.get('')
def list_perfumes(db: Session = Depends(get_db), category: Optional[Category] = None, limit: int = 50, offset: int = 0):
    items = catalog.list_active(db, category=category, limit=limit, offset=offset)
    return {'success': True, 'data': {'perfumes': [_out(p) for p in items]}}

@router.get('/{perfume_id}')
def get_perfume(perfume_id: int, db: Session = Depends(get_db)):
    obj = catalog.get(db, perfume_id)
    if not obj or not obj.is_active: raise PerfumeNotFound()
    return {'success': True, 'data': {'perfume': _out(obj)}}

@router.post('', status_code=201)
def create_perfume(payload: PerfumeCreate, db: Session = Depends(get_db),
                   admin: User = Depends(require_capability(Capability.MANAGE_CATALOG))):
    fields = payload.model_dump(exclude_none=True)
    obj = catalog.create_perfume(db, created_by=admin.id, **fields)
    return {'success': True, 'data': {'perfume': _out(obj)}}

@router.post('/{perfume_id}/restock')
def restock(perfume_id: int, payload: RestockPayload, db: Session = Depends(get_db),
            _=Depends(require_capability(Capability.MANAGE_CATALOG))):
    obj = catalog.restock(db, perfume_id, payload.quantity)
    if not obj: raise PerfumeNotFound()
    return {'success': True, 'data': {'perfume': _out(obj)}}

@router.delete('/{perfume_id}')
def delete_perfume(perfume_id: int, db: Session = Depends(get_db),
                   _=Depends(require_capability(Capability.MANAGE_CATALOG))):
    obj = catalog.deactivate(db, perfume_id)
    if not obj: raise PerfumeNotFound()
    return {'success': True, 'message': 'Perfume deleted', 'data': {'perfume': _out(obj)}}
