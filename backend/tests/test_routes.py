"""
HTTP API tests.

Verifies:
- Authentication is required and roles are enforced
- Domain failures map to 4xx responses with structured bodies
- Sale commit, replay, edit and delete through the API
"""

import io

import pytest


class TestAuthEndpoints:

    def test_login_and_me(self, client, staff_headers):
        response = client.get('/api/auth/me', headers=staff_headers)
        assert response.status_code == 200
        assert response.json['user']['username'] == "staff"

    def test_bad_credentials(self, client, staff_user):
        response = client.post('/api/auth/login', json={'username': 'staff', 'password': 'Nope123!x'})
        assert response.status_code == 401

    def test_logout_invalidates_token(self, client, staff_headers):
        assert client.post('/api/auth/logout', headers=staff_headers).status_code == 200
        assert client.get('/api/auth/me', headers=staff_headers).status_code == 401

    @pytest.mark.parametrize("path", ['/api/products', '/api/sales', '/api/reports/dashboard'])
    def test_requires_token(self, client, db_session, path):
        assert client.get(path).status_code == 401

    def test_staff_cannot_manage_users(self, client, staff_headers):
        response = client.get('/api/users', headers=staff_headers)
        assert response.status_code == 403
        assert response.json['error'] == "Permission denied"

    def test_admin_cannot_delete_self(self, client, admin_user, admin_headers):
        response = client.delete(f'/api/users/{admin_user.id}', headers=admin_headers)
        assert response.status_code == 409


class TestProductEndpoints:

    def test_admin_creates_product(self, client, admin_headers):
        response = client.post('/api/products', headers=admin_headers, json={
            'name': 'Coffee', 'barcode': 'C-1', 'cost_price': 1000, 'sale_price': 1500, 'quantity': 20,
        })
        assert response.status_code == 201
        assert response.json['product']['quantity'] == 20

        lookup = client.get('/api/products/barcode/C-1', headers=admin_headers)
        assert lookup.json['product']['name'] == 'Coffee'

    def test_staff_cannot_create_product(self, client, staff_headers):
        response = client.post('/api/products', headers=staff_headers, json={
            'name': 'Coffee', 'cost_price': 1000, 'sale_price': 1500,
        })
        assert response.status_code == 403

    @pytest.mark.parametrize("payload", [
        {'name': 'X', 'cost_price': -1, 'sale_price': 1},
        {'name': 'X', 'cost_price': 1.5, 'sale_price': 1},
        {'name': 'X', 'cost_price': 1},
        {'name': 'X', 'cost_price': 1, 'sale_price': 1, 'version_id': 7},
    ])
    def test_invalid_product_payload(self, client, admin_headers, payload):
        response = client.post('/api/products', headers=admin_headers, json=payload)
        assert response.status_code == 400

    def test_duplicate_barcode_is_conflict(self, client, admin_headers, product_p):
        response = client.post('/api/products', headers=admin_headers, json={
            'name': 'Copy', 'barcode': '1001', 'cost_price': 1, 'sale_price': 2,
        })
        assert response.status_code == 409
        assert response.json['code'] == 'DuplicateBarcode'

    def test_csv_import_upload(self, client, admin_headers):
        csv_text = "Name,Barcode,Cost Price,Sale Price,Quantity,Category\nTea,T-1,100,200,5,Drinks\n"
        response = client.post(
            '/api/products/import',
            headers=admin_headers,
            data={'file': (io.BytesIO(csv_text.encode('utf-8')), 'products.csv')},
            content_type='multipart/form-data',
        )
        assert response.status_code == 200
        assert response.json['imported'] == 1

        export = client.get('/api/products/export', headers=admin_headers)
        assert export.status_code == 200
        assert 'Tea,T-1,100,200,5,Drinks' in export.get_data(as_text=True)


class TestSaleEndpoints:

    def test_commit_returns_voucher(self, client, staff_headers, product_p, product_q):
        response = client.post('/api/sales', headers=staff_headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 2}, {'product_id': product_q.id, 'quantity': 1}],
            'received_amount': 1000,
        })
        assert response.status_code == 201
        sale = response.json['sale']
        assert sale['total_sale'] == 600
        assert sale['change_amount'] == 400
        assert sale['created_by'] == 'staff'
        assert len(sale['items']) == 2

    def test_insufficient_stock_is_conflict(self, client, staff_headers, product_q):
        response = client.post('/api/sales', headers=staff_headers, json={
            'items': [{'product_id': product_q.id, 'quantity': 6}],
            'received_amount': 5000,
        })
        assert response.status_code == 409
        assert response.json['code'] == 'InsufficientStock'
        assert response.json['details']['available'] == 5

    def test_insufficient_payment_is_conflict(self, client, staff_headers, product_p):
        response = client.post('/api/sales', headers=staff_headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 1}],
            'received_amount': 100,
        })
        assert response.status_code == 409
        assert response.json['code'] == 'InsufficientPayment'

    def test_malformed_commit(self, client, staff_headers):
        response = client.post('/api/sales', headers=staff_headers, json={'items': [], 'received_amount': 0})
        assert response.status_code == 400

    def test_unknown_product_is_not_found(self, client, staff_headers, db_session):
        response = client.post('/api/sales', headers=staff_headers, json={
            'items': [{'product_id': 999, 'quantity': 1}], 'received_amount': 100,
        })
        assert response.status_code == 404

    def test_replay_returns_original(self, client, staff_headers, product_p):
        body = {
            'items': [{'product_id': product_p.id, 'quantity': 1}],
            'received_amount': 150,
            'client_reference': 'term-7-0001',
        }
        first = client.post('/api/sales', headers=staff_headers, json=body)
        second = client.post('/api/sales', headers=staff_headers, json=body)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json['replayed'] is True
        assert second.json['sale']['voucher_number'] == first.json['sale']['voucher_number']

    def test_preview(self, client, staff_headers, product_p):
        response = client.post('/api/sales/preview', headers=staff_headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 3}], 'received_amount': 500,
        })
        assert response.status_code == 200
        assert response.json['cart']['total_sale'] == 450
        assert response.json['cart']['change_amount'] == 50

    def test_edit_and_delete_are_admin_only(self, client, staff_headers, admin_headers, product_p):
        created = client.post('/api/sales', headers=staff_headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 3}], 'received_amount': 450,
        })
        sale_id = created.json['sale']['id']

        patch_body = {'items': [{'product_id': product_p.id, 'quantity': 1}]}
        assert client.patch(f'/api/sales/{sale_id}', headers=staff_headers, json=patch_body).status_code == 403

        edited = client.patch(f'/api/sales/{sale_id}', headers=admin_headers, json=patch_body)
        assert edited.status_code == 200
        assert edited.json['sale']['status'] == 'EDITED'
        assert edited.json['sale']['change_amount'] == 300

        assert client.delete(f'/api/sales/{sale_id}', headers=staff_headers).status_code == 403
        assert client.delete(f'/api/sales/{sale_id}', headers=admin_headers).status_code == 200
        assert client.get(f'/api/sales/{sale_id}', headers=admin_headers).status_code == 404

        product = client.get(f'/api/products/{product_p.id}', headers=admin_headers)
        assert product.json['product']['quantity'] == 10

    def test_list_sales_search(self, client, staff_headers, product_p):
        created = client.post('/api/sales', headers=staff_headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 1}], 'received_amount': 150,
        })
        number = created.json['sale']['voucher_number']

        response = client.get(f'/api/sales?search={number}', headers=staff_headers)
        assert response.status_code == 200
        assert [s['voucher_number'] for s in response.json['items']] == [number]

        bad = client.get('/api/sales?start=not-a-date', headers=staff_headers)
        assert bad.status_code == 400


class TestSystemEndpoints:

    def test_health_degraded_without_admin(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['status'] == 'degraded'

    def test_health_ok(self, client, admin_user):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['status'] == 'healthy'
        assert response.json['checks']['database']['status'] == 'healthy'

    def test_dashboard(self, client, staff_headers, product_p):
        client.post('/api/sales', headers=staff_headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 2}], 'received_amount': 300,
        })
        response = client.get('/api/reports/dashboard', headers=staff_headers)
        assert response.status_code == 200
        assert response.json['today']['total_profit'] == 100
        assert response.json['inventory']['total'] == 1

    def test_backup_export_and_restore(self, client, admin_headers, product_p):
        exported = client.get('/api/backup/export', headers=admin_headers)
        assert exported.status_code == 200
        assert 'attachment' in exported.headers['Content-Disposition']

        bad = client.post('/api/backup/restore', headers=admin_headers, json={'version': '1.0'})
        assert bad.status_code == 400

        # Restoring users also drops every session, so this must come last
        restored = client.post('/api/backup/restore', headers=admin_headers, json=exported.json)
        assert restored.status_code == 200
        assert restored.json['restored']['products'] == 1
