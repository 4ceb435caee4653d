def test_openapi_spec_available(client):
    resp = client.get('/openapi.json')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['openapi'].startswith('3.')
    assert '/iam/auth/login' in body['paths']
    assert body['info']['title'] == 'Badge Admin API'


def test_docs_page(client):
    resp = client.get('/docs')
    assert resp.status_code == 200
    assert b'Redoc' in resp.data or b'redoc' in resp.data


def test_public_operations_opt_out_of_security(client):
    spec = client.get('/openapi.json').get_json()
    assert spec['paths']['/verify/{code}']['get']['security'] == []
    assert spec['paths']['/iam/auth/login']['post']['security'] == []
    assert 'security' not in spec['paths']['/id-cards']['post']


def test_list_caching_headers_documented(client):
    resp = client.get('/openapi.json')
    spec = resp.get_json()
    for p in ['/id-cards', '/iam/roles', '/iam/menus', '/iam/audit/logs']:
        get_op = spec['paths'][p]['get']
        hdrs = get_op['responses']['200'].get('headers', {})
        for h in ['ETag', 'Last-Modified', 'X-Last-Modified-ISO']:
            assert h in hdrs, f"{p} missing header doc {h}"
        params = [pr['$ref'] for pr in get_op.get('parameters', [])]
        assert params == ['#/components/parameters/LimitParam', '#/components/parameters/OffsetParam']


def test_lifecycle_operations_document_their_edge_capability(client):
    spec = client.get('/openapi.json').get_json()
    caps = {
        p: spec['paths'][p]['post']['x-required-capabilities']
        for p in ['/id-cards/{card_id}/ready', '/id-cards/{card_id}/print', '/id-cards/{card_id}/lost']
    }
    assert caps['/id-cards/{card_id}/ready'] == [{'area': 'Generate ID', 'action': 'approve'}]
    assert caps['/id-cards/{card_id}/print'] == [{'area': 'Generate ID', 'action': 'edit'}]
    assert caps['/id-cards/{card_id}/lost'] == [{'area': 'Generate ID', 'action': 'edit'}]
    transition = spec['paths']['/id-cards/{card_id}/transition']['post']
    assert transition['x-required-capabilities-by-edge'].endswith('x-transition-edges')
    edges = spec['components']['schemas']['IdCard']['x-transition-edges']
    assert {'from': 'printed', 'to': 'expired', 'requires': None} in edges


def test_error_schema_lists_types(client):
    spec = client.get('/openapi.json').get_json()
    types = spec['components']['schemas']['Error']['properties']['error']['properties']['type']['enum']
    for t in ('denied', 'invalid_transition', 'not_found'):
        assert t in types
