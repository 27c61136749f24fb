import pytest

from dormguard.core import config


@pytest.mark.parametrize('path', ['/', '/login', '/public'])
def test_open_pages_embed_the_csrf_cookie_value(client, path: str) -> None:
    response = client.get(path)

    assert response.status_code == 200
    assert response.headers['content-type'].startswith('text/html')
    token = response.cookies[config.CSRF_COOKIE_NAME]
    assert f'<meta name="csrf-token" content="{token}">' in response.text


@pytest.mark.parametrize('path', ['/record', '/audit', '/export'])
def test_protected_pages_redirect_to_login_without_token(client, path: str) -> None:
    response = client.get(path, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers['location'] == '/login'


@pytest.mark.parametrize('path', ['/record', '/audit', '/export'])
def test_protected_pages_render_for_logged_in_users(client, staff, auth_headers, path: str) -> None:
    response = client.get(path, headers=auth_headers(staff))

    assert response.status_code == 200
    assert 'duty' in response.text
