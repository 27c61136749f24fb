import csv
import io
import logging
import os
import re
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse, Response
from pydantic import BaseModel, ValidationError, field_validator
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query as OrmQuery, Session

from dormguard.auth.dependencies import get_current_claims
from dormguard.core import config, uploads
from dormguard.database import get_db
from dormguard.models.user import Claims, User
from dormguard.models.violation import Violation

router = APIRouter(tags=['violations'])

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 200
MAX_PAGE = 1_000_000
LIKE_ESCAPE = '/'
CSV_HEADER = ['ID', '宿舍号', '姓名', '班级', '时间段', '违纪原因', '部门', '执勤人', '记录时间', '录入人']
CSV_TIME_FORMAT = '%Y-%m-%d %H:%M:%S'
_NEWLINES = re.compile(r'\r\n|\r|\n')


class ViolationForm(BaseModel):
    dorm: str
    student_name: str
    class_name: str
    period: str
    reason: str
    department: str
    inspector: str

    @field_validator('*')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('dorm', 'period')
    @classmethod
    def validate_short_fields(cls, value: str) -> str:
        return _check_length(value, 20)

    @field_validator('student_name', 'class_name')
    @classmethod
    def validate_name_fields(cls, value: str) -> str:
        return _check_length(value, 50)

    @field_validator('department')
    @classmethod
    def validate_department(cls, value: str) -> str:
        return _check_length(value, 30)

    @field_validator('inspector')
    @classmethod
    def validate_inspector(cls, value: str) -> str:
        return _check_length(value, 100)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        return _check_length(value, 2000)


class ViolationResponse(BaseModel):
    id: int
    dorm: str
    student_name: str
    class_name: str
    period: str
    reason: str
    department: str
    inspector: str
    photo_path: str
    created_by: int
    creator_name: str
    created_at: datetime | None = None


def _check_length(value: str, limit: int) -> str:
    if len(value) > limit:
        raise ValueError(f'Must be {limit} characters or fewer.')
    return value


def parse_int(raw: str | None, default: int) -> int:
    raw = (raw or '').strip()
    if raw.isascii() and raw.isdigit():
        return int(raw)
    return default


def normalize_pagination(page: int, limit: int) -> tuple[int, int]:
    if page < 1:
        page = 1
    # Keeps the row offset within the driver's integer range.
    if page > MAX_PAGE:
        page = MAX_PAGE
    if limit < 1 or limit > MAX_PAGE_LIMIT:
        limit = DEFAULT_PAGE_LIMIT
    return page, limit


def escape_like(keyword: str) -> str:
    return (
        keyword.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace('%', LIKE_ESCAPE + '%')
        .replace('_', LIKE_ESCAPE + '_')
    )


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def build_filters(day: date | None, keyword: str | None) -> list:
    filters = []
    if day is not None:
        start, end = day_bounds(day)
        filters.extend([Violation.created_at >= start, Violation.created_at < end])

    keyword = (keyword or '').strip()
    if keyword:
        pattern = f'%{escape_like(keyword)}%'
        filters.append(
            or_(
                Violation.student_name.ilike(pattern, escape=LIKE_ESCAPE),
                Violation.class_name.ilike(pattern, escape=LIKE_ESCAPE),
                Violation.dorm.ilike(pattern, escape=LIKE_ESCAPE),
                Violation.reason.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )
    return filters


def query_with_creator(db: Session) -> OrmQuery:
    # Blank display names fall back to the username as well as missing ones.
    creator_name = func.coalesce(func.nullif(User.display_name, ''), User.username).label('creator_name')
    return db.query(Violation, creator_name).outerjoin(User, Violation.created_by == User.id)


def to_response(violation: Violation, creator_name: str | None) -> ViolationResponse:
    return ViolationResponse(
        id=violation.id,
        dorm=violation.dorm,
        student_name=violation.student_name,
        class_name=violation.class_name,
        period=violation.period,
        reason=violation.reason,
        department=violation.department,
        inspector=violation.inspector,
        photo_path=violation.photo_path or '',
        created_by=violation.created_by,
        creator_name=creator_name or '',
        created_at=violation.created_at,
    )


def parse_record_id(raw_id: str) -> int:
    record_id = int(raw_id) if raw_id.isascii() and raw_id.isdigit() else 0
    if record_id < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='无效的记录 ID')
    return record_id


def flatten_newlines(value: str) -> str:
    return _NEWLINES.sub(' ', value or '')


def render_csv(rows) -> str:
    buffer = io.StringIO()
    buffer.write('\ufeff')
    buffer.write(','.join(CSV_HEADER) + '\n')
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator='\n')
    for violation, creator_name in rows:
        writer.writerow([
            violation.id,
            violation.dorm,
            violation.student_name,
            violation.class_name,
            violation.period,
            flatten_newlines(violation.reason),
            violation.department,
            violation.inspector,
            violation.created_at.strftime(CSV_TIME_FORMAT) if violation.created_at else '',
            creator_name or '',
        ])
    return buffer.getvalue()


def _database_error(message: str, exc: SQLAlchemyError) -> HTTPException:
    logger.exception('%s: %s', message, exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


@router.post('')
def create_violation(
    dorm: str = Form(''),
    student_name: str = Form(''),
    class_name: str = Form(''),
    period: str = Form(''),
    reason: str = Form(''),
    department: str = Form(''),
    inspector: str = Form(''),
    photo: UploadFile | None = File(default=None),
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    try:
        data = ViolationForm(
            dorm=dorm,
            student_name=student_name,
            class_name=class_name,
            period=period,
            reason=reason,
            department=department,
            inspector=inspector,
        )
    except ValidationError as exc:
        fields = ', '.join(str(error['loc'][0]) for error in exc.errors())
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f'请填写完整信息: {fields}') from exc

    photo_path = ''
    if photo is not None and photo.filename:
        # One byte over the cap is enough to reject without buffering the rest.
        content = photo.file.read(config.MAX_UPLOAD_BYTES + 1)
        try:
            extension = uploads.validate_photo(photo.filename, content)
        except uploads.PhotoRejected as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

        try:
            photo_path = uploads.save_photo(content, claims.user_id, extension)
        except OSError as exc:
            logger.exception('Saving photo failed')
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='文件保存失败') from exc

    violation = Violation(
        dorm=data.dorm,
        student_name=data.student_name,
        class_name=data.class_name,
        period=data.period,
        reason=data.reason,
        department=data.department,
        inspector=data.inspector,
        photo_path=photo_path,
        created_by=claims.user_id,
    )
    try:
        db.add(violation)
        db.commit()
        db.refresh(violation)
    except SQLAlchemyError as exc:
        db.rollback()
        uploads.remove_photo(photo_path)
        raise _database_error('保存失败', exc) from exc

    logger.info('Violation %d recorded by user %d', violation.id, claims.user_id)
    return {'id': violation.id, 'message': '提交成功'}


@router.get('')
def list_violations(
    date_filter: date | None = Query(default=None, alias='date'),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    keyword: str | None = Query(default=None),
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    del claims
    page, limit = normalize_pagination(parse_int(page, 1), parse_int(limit, DEFAULT_PAGE_LIMIT))
    filters = build_filters(date_filter, keyword)

    try:
        total = db.query(func.count(Violation.id)).filter(*filters).scalar() or 0
        rows = (
            query_with_creator(db)
            .filter(*filters)
            .order_by(Violation.created_at.desc(), Violation.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )
    except SQLAlchemyError as exc:
        raise _database_error('查询失败', exc) from exc

    return {
        'data': [to_response(violation, creator_name) for violation, creator_name in rows],
        'total': total,
        'page': page,
        'limit': limit,
    }


@router.get('/today')
def list_today_violations(db: Session = Depends(get_db)):
    today = date.today()
    try:
        rows = (
            query_with_creator(db)
            .filter(*build_filters(today, None))
            .order_by(Violation.created_at.desc(), Violation.id.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise _database_error('查询失败', exc) from exc

    return {
        'data': [to_response(violation, creator_name) for violation, creator_name in rows],
        'date': today.isoformat(),
        'count': len(rows),
    }


@router.get('/export')
def export_violations_csv(
    date_filter: date | None = Query(default=None, alias='date'),
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    del claims
    day = date_filter or date.today()
    try:
        rows = (
            query_with_creator(db)
            .filter(*build_filters(day, None))
            .order_by(Violation.created_at.asc(), Violation.id.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise _database_error('查询失败', exc) from exc

    filename = f'violations_{day.isoformat()}.csv'
    return Response(
        content=render_csv(rows).encode('utf-8'),
        media_type='text/csv; charset=utf-8',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


@router.delete('/{violation_id}')
def delete_violation(
    violation_id: str,
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    record_id = parse_record_id(violation_id)

    try:
        violation = db.query(Violation).filter(Violation.id == record_id).first()
        if violation is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='记录不存在')
        photo_path = violation.photo_path
        db.delete(violation)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_error('删除失败', exc) from exc

    # Not atomic with the row delete: a crash here leaves an orphaned file.
    uploads.remove_photo(photo_path)
    logger.info('Violation %d deleted by user %d', record_id, claims.user_id)
    return {'message': '删除成功'}


@router.get('/{violation_id}/photo')
def get_violation_photo(
    violation_id: str,
    claims: Claims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    del claims
    record_id = parse_record_id(violation_id)

    try:
        photo_path = db.query(Violation.photo_path).filter(Violation.id == record_id).scalar()
    except SQLAlchemyError as exc:
        raise _database_error('查询失败', exc) from exc

    if not photo_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='照片不存在')

    full_path = uploads.photo_full_path(photo_path)
    if not os.path.isfile(full_path):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='照片文件不存在')

    return FileResponse(full_path)
