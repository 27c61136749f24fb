import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dormguard.auth.dependencies import get_current_claims
from dormguard.database import get_db
from dormguard.models.user import Claims, User
from dormguard.models.violation import Violation
from dormguard.routes.violation_routes import build_filters

router = APIRouter(tags=['stats'])

logger = logging.getLogger(__name__)


@router.get('')
def get_stats(claims: Claims = Depends(get_current_claims), db: Session = Depends(get_db)):
    del claims
    try:
        today_count = db.query(func.count(Violation.id)).filter(*build_filters(date.today(), None)).scalar()
        total_count = db.query(func.count(Violation.id)).scalar()
        user_count = db.query(func.count(User.id)).scalar()
    except SQLAlchemyError as exc:
        logger.exception('Computing stats failed')
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='查询失败') from exc

    return {
        'today_count': today_count or 0,
        'total_count': total_count or 0,
        'user_count': user_count or 0,
    }
