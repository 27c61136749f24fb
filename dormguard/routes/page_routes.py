from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from dormguard.auth.dependencies import get_optional_claims
from dormguard.models.user import Claims

router = APIRouter(tags=['pages'], include_in_schema=False)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / 'templates'))


def render_page(request: Request, template_name: str, title: str, claims: Claims | None = None):
    return templates.TemplateResponse(
        request,
        template_name,
        {
            'title': title,
            'user': claims,
            'csrf_token': getattr(request.state, 'csrf_token', ''),
        },
    )


@router.get('/')
def index_page(request: Request):
    return render_page(request, 'index.html', '宿舍违纪管理')


@router.get('/login')
def login_page(request: Request):
    return render_page(request, 'login.html', '登录')


@router.get('/public')
def public_page(request: Request):
    return render_page(request, 'public.html', '今日违纪公示')


@router.get('/record')
def record_page(request: Request, claims: Claims | None = Depends(get_optional_claims)):
    if claims is None:
        return RedirectResponse(url='/login', status_code=303)
    return render_page(request, 'record.html', '违纪录入', claims)


@router.get('/audit')
def audit_page(request: Request, claims: Claims | None = Depends(get_optional_claims)):
    if claims is None:
        return RedirectResponse(url='/login', status_code=303)
    return render_page(request, 'audit.html', '记录审核', claims)


@router.get('/export')
def export_page(request: Request, claims: Claims | None = Depends(get_optional_claims)):
    if claims is None:
        return RedirectResponse(url='/login', status_code=303)
    return render_page(request, 'export.html', '数据导出', claims)
