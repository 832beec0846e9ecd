from sqlalchemy.exc import OperationalError

from medcenter import main
from medcenter.database import DATABASE_UNAVAILABLE_DETAIL, database_unavailable


def test_root_reports_database_health(api_client) -> None:
    response = api_client.get('/')

    assert response.status_code == 200
    assert response.json() == {
        'success': True,
        'message': 'Medical Center API Running',
        'data': {'database': 'ok'},
    }


def test_root_reports_unavailable_database(api_client, monkeypatch) -> None:
    monkeypatch.setattr(main, 'check_database', lambda: False)

    assert api_client.get('/').json()['data'] == {'database': 'unavailable'}


def test_database_unavailable_maps_to_503() -> None:
    exc = database_unavailable(OperationalError('SELECT 1', {}, Exception('connection refused')))

    assert exc.status_code == 503
    assert exc.detail == DATABASE_UNAVAILABLE_DETAIL
