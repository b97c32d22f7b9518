"""
Tests for the shared layer: query cache, upstream client, login proxy,
placeholder routes, image validation and list state.
"""
import json
from unittest import mock

import requests
from django import forms
from django.core.cache import cache
from django.core.cache.backends.locmem import LocMemCache
from django.http import QueryDict
from django.test import SimpleTestCase, TestCase, override_settings

from main.api import ApiClient, MultipartPayload, SessionExpired, upstream_url, url_to_query_key
from main.forms import IMAGE_REQUIRED_MESSAGE, IMAGE_SIZE_MESSAGE, IMAGE_TYPE_MESSAGE, image_field
from main.images import mime_type_for, storage_url
from main.pagination import ListParams, Pager
from main.query_cache import QueryCache
from main.schemas import Meta
from main.test_utils import TOKEN, UPSTREAM, UpstreamStub, envelope, fake_response, png_upload

INVENTORIES = '/v1/api/inventories'


class QueryCacheTests(SimpleTestCase):
    """Entries, staleness and prefix invalidation"""

    def setUp(self):
        cache.clear()
        self.cache = QueryCache(namespace='reader')

    def test_fresh_entry_is_served(self):
        self.cache.set([INVENTORIES, 'page=0&limit=10'], {'rows': 1})
        entry = self.cache.get([INVENTORIES, 'page=0&limit=10'], stale_time=30)
        self.assertEqual(entry['data'], {'rows': 1})

    def test_zero_stale_time_never_serves(self):
        self.cache.set([INVENTORIES], {'rows': 1})
        self.assertIsNone(self.cache.get([INVENTORIES], stale_time=0))

    def test_stale_entry_is_not_served(self):
        with mock.patch('main.query_cache.time.time', return_value=1000.0):
            self.cache.set([INVENTORIES], {'rows': 1})
        with mock.patch('main.query_cache.time.time', return_value=1031.0):
            self.assertIsNone(self.cache.get([INVENTORIES], stale_time=30))

    def test_invalidate_drops_every_page_under_prefix(self):
        self.cache.set([INVENTORIES, 'page=0&limit=10'], 'first')
        self.cache.set([INVENTORIES, 'page=1&limit=10'], 'second')
        self.cache.set([INVENTORIES + '/abc'], 'detail')

        self.cache.invalidate([INVENTORIES])

        self.assertIsNone(self.cache.get([INVENTORIES, 'page=0&limit=10'], 30))
        self.assertIsNone(self.cache.get([INVENTORIES, 'page=1&limit=10'], 30))
        self.assertEqual(self.cache.get([INVENTORIES + '/abc'], 30)['data'], 'detail')

    def test_namespaces_are_isolated(self):
        self.cache.set([INVENTORIES], 'mine')
        other = QueryCache(namespace='someone-else')
        self.assertIsNone(other.get([INVENTORIES], 30))

    def test_invalidate_full_key_leaves_other_pages(self):
        self.cache.set([INVENTORIES, 'page=0&limit=10'], 'first')
        self.cache.set([INVENTORIES, 'page=1&limit=10'], 'second')

        self.cache.invalidate([INVENTORIES, 'page=0&limit=10'])

        self.assertIsNone(self.cache.get([INVENTORIES, 'page=0&limit=10'], 30))
        self.assertEqual(self.cache.get([INVENTORIES, 'page=1&limit=10'], 30)['data'], 'second')

    def test_invalidate_holds_when_small_cache_culls(self):
        backend = LocMemCache('query-cache-culling', {'OPTIONS': {'MAX_ENTRIES': 10, 'CULL_FREQUENCY': 3}})
        backend.clear()
        small = QueryCache(namespace='reader', backend=backend)
        list_key = [INVENTORIES, 'page=0&limit=10']

        small.set(list_key, 'list with deleted row')
        for page in range(12):
            small.set(['/v1/api/users', f'page={page}&limit=10'], page)
            small.get(list_key, 30)
        small.invalidate([INVENTORIES])

        self.assertIsNone(small.get(list_key, 30))

    def test_lost_stamp_does_not_revive_entries(self):
        self.cache.set([INVENTORIES, 'page=0&limit=10'], 'old')
        cache.delete(self.cache._stamp_key([INVENTORIES]))
        self.assertIsNone(self.cache.get([INVENTORIES, 'page=0&limit=10'], 30))


@override_settings(UPSTREAM_API_URL=UPSTREAM, QUERY_STALE_TIME=30)
class ApiClientTests(TestCase):
    """Queries, mutations and error mapping of the upstream client"""

    def setUp(self):
        cache.clear()
        self.client_api = ApiClient(token=TOKEN)
        self.stub = UpstreamStub({
            ('GET', '/api/inventories?page=0&limit=10'): fake_response(200, envelope([])),
            ('GET', '/api/inventories/missing'): fake_response(404, {'message': 'Inventory not found'}),
            ('GET', '/api/inventories/expired'): fake_response(401, {'message': 'Unauthorized'}),
            ('POST', '/api/inventories'): fake_response(201, envelope({'id': 'abc'})),
            ('DELETE', '/api/inventories/abc'): fake_response(204),
            ('POST', '/api/inventories/bad'): fake_response(400, {'error': 'nope'}),
        })
        patcher = mock.patch('main.api.requests.request', side_effect=self.stub)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_query_key_splits_path_and_query(self):
        self.assertEqual(url_to_query_key('/v1/api/users?page=0&limit=10'),
                         ['/v1/api/users', 'page=0&limit=10'])
        self.assertEqual(url_to_query_key('/v1/api/users'), ['/v1/api/users'])

    def test_upstream_url_strips_proxy_prefix(self):
        self.assertEqual(upstream_url('/v1/api/users'), UPSTREAM + '/api/users')

    def test_string_query_keys_are_single_segments(self):
        mutation = self.client_api.use_api(INVENTORIES + '/abc', method='DELETE', query_key=INVENTORIES,
                                           invalidates=[INVENTORIES + '/abc'])
        self.assertEqual(mutation.key, [INVENTORIES])
        self.assertEqual(mutation.invalidates, [[INVENTORIES + '/abc']])

    def test_query_is_served_from_cache_until_stale(self):
        first = self.client_api.use_api(INVENTORIES + '?page=0&limit=10')
        second = self.client_api.use_api(INVENTORIES + '?page=0&limit=10')

        self.assertTrue(first.is_success)
        self.assertEqual(second.data, first.data)
        self.assertEqual(len(self.stub.calls), 1)

    def test_zero_stale_time_always_refetches(self):
        self.client_api.use_api(INVENTORIES + '?page=0&limit=10', stale_time=0)
        self.client_api.use_api(INVENTORIES + '?page=0&limit=10', stale_time=0)
        self.assertEqual(len(self.stub.calls), 2)

    def test_focus_reload_bypasses_cache_when_enabled(self):
        self.client_api.use_api(INVENTORIES + '?page=0&limit=10')
        focused = ApiClient(token=TOKEN, focus_refetch=True)
        focused.use_api(INVENTORIES + '?page=0&limit=10', refetch_on_window_focus=True)
        focused.use_api(INVENTORIES + '?page=0&limit=10')
        self.assertEqual(len(self.stub.calls), 2)

    def test_disabled_query_stays_pending(self):
        query = self.client_api.use_api(INVENTORIES, enabled=False)
        self.assertTrue(query.is_pending)
        self.assertEqual(self.stub.calls, [])

    def test_query_error_carries_upstream_message(self):
        query = self.client_api.use_api(INVENTORIES + '/missing')
        self.assertTrue(query.is_error)
        self.assertEqual(str(query.error), 'Inventory not found')
        self.assertEqual(query.error.status, 404)

    def test_rejected_token_raises_session_expired(self):
        with self.assertRaises(SessionExpired):
            self.client_api.use_api(INVENTORIES + '/expired')

    def test_authorization_header_carries_token(self):
        self.client_api.use_api(INVENTORIES + '?page=0&limit=10')
        _, _, kwargs = self.stub.calls[0]
        self.assertEqual(kwargs['headers']['Authorization'], f'Bearer {TOKEN}')

    def test_mutation_success_runs_callback_and_invalidates_once(self):
        query_cache = mock.Mock()
        query_cache.invalidate.return_value = 0
        client_api = ApiClient(token=TOKEN, query_cache=query_cache)
        on_success = mock.Mock()

        mutation = client_api.use_api(INVENTORIES, method='POST', invalidates=[[INVENTORIES]],
                                      on_success=on_success)
        data = mutation.mutate({'name': 'Widget'})

        self.assertTrue(mutation.is_success)
        self.assertEqual(data['result'], {'id': 'abc'})
        on_success.assert_called_once_with(data)
        query_cache.invalidate.assert_called_once_with([INVENTORIES])

    def test_mutation_sends_json_body(self):
        self.client_api.use_api(INVENTORIES, method='POST').mutate({'name': 'Widget'})
        self.assertEqual(self.stub.calls_to('POST', '/api/inventories')[0]['json'], {'name': 'Widget'})

    def test_multipart_payload_is_sent_as_form_parts(self):
        payload = MultipartPayload({'name': 'Widget'}, {'image': ('a.png', b'png', 'image/png')})
        self.client_api.use_api(INVENTORIES, method='POST').mutate(payload)

        kwargs = self.stub.calls_to('POST', '/api/inventories')[0]
        self.assertEqual(kwargs['files'], [
            ('name', (None, 'Widget')),
            ('image', ('a.png', b'png', 'image/png')),
        ])
        self.assertNotIn('json', kwargs)

    def test_delete_sends_no_body_and_returns_none_for_empty_response(self):
        mutation = self.client_api.use_api(INVENTORIES + '/abc', method='DELETE', body={'ignored': True})
        self.assertIsNone(mutation.mutate())
        self.assertTrue(mutation.is_success)
        self.assertNotIn('json', self.stub.calls_to('DELETE', '/api/inventories/abc')[0])

    def test_mutation_failure_runs_error_callback_without_invalidating(self):
        self.client_api.use_api(INVENTORIES + '?page=0&limit=10')
        on_error = mock.Mock()

        mutation = self.client_api.use_api(INVENTORIES + '/bad', method='POST',
                                           invalidates=[[INVENTORIES]], on_error=on_error)
        self.assertIsNone(mutation.mutate({}))

        self.assertTrue(mutation.is_error)
        self.assertEqual(str(mutation.error), 'Request failed with status code 400')
        on_error.assert_called_once_with(mutation.error)
        self.client_api.use_api(INVENTORIES + '?page=0&limit=10')
        self.assertEqual(len(self.stub.calls_to('GET', '/api/inventories?page=0&limit=10')), 1)

    def test_network_failure_becomes_error_state(self):
        with mock.patch('main.api.requests.request',
                        side_effect=requests.exceptions.ConnectionError('refused')):
            query = self.client_api.use_api(INVENTORIES + '/abc')
        self.assertTrue(query.is_error)
        self.assertIsNone(query.error.status)

    def test_unsupported_method_fails_at_setup(self):
        with self.assertRaisesMessage(ValueError, 'Unsupported method: OPTIONS'):
            self.client_api.use_api(INVENTORIES, method='OPTIONS')


@override_settings(UPSTREAM_API_URL=UPSTREAM, AUTH_COOKIE_SECURE=True)
class LoginTests(TestCase):
    """Login page, JSON login proxy and the token guard"""

    def setUp(self):
        cache.clear()
        self.login_body = envelope({
            'token': {'accessToken': 'access-1', 'refreshToken': 'refresh-1'},
            'user': {'email': 'ann@example.com', 'name': 'Ann'},
        })

    @mock.patch('main.auth.requests.post')
    def test_api_login_sets_both_cookies(self, mock_post):
        mock_post.return_value = fake_response(200, self.login_body)

        response = self.client.post('/api/login', data=json.dumps({'email': 'ann@example.com', 'password': 'pw'}),
                                    content_type='application/json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), self.login_body)
        mock_post.assert_called_once()
        self.assertEqual(mock_post.call_args.args[0], UPSTREAM + '/api/auth/login')

        access = response.cookies['token']
        self.assertEqual(access.value, 'access-1')
        self.assertEqual(access['path'], '/')
        self.assertEqual(access['samesite'], 'Lax')
        self.assertEqual(access['max-age'], 60 * 60 * 24 * 7)
        self.assertTrue(access['secure'])
        self.assertEqual(response.cookies['refreshToken'].value, 'refresh-1')

    @mock.patch('main.auth.requests.post')
    def test_api_login_rejected_sets_no_cookies(self, mock_post):
        mock_post.return_value = fake_response(401, {'message': 'Bad credentials'})

        response = self.client.post('/api/login', data=json.dumps({'email': 'x@example.com', 'password': 'bad'}),
                                    content_type='application/json')

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {'error': 'Login failed'})
        self.assertNotIn('token', response.cookies)
        self.assertNotIn('refreshToken', response.cookies)

    def test_api_login_invalid_json(self):
        response = self.client.post('/api/login', data='{not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)

    @mock.patch('main.auth.requests.post')
    def test_login_page_redirects_to_inventory(self, mock_post):
        mock_post.return_value = fake_response(200, self.login_body)

        response = self.client.post('/login/', {'email': 'ann@example.com', 'password': 'pw'})

        self.assertRedirects(response, '/admin/inventory/', fetch_redirect_response=False)
        self.assertEqual(response.cookies['token'].value, 'access-1')

    @mock.patch('main.auth.requests.post')
    def test_login_page_failure_shows_form_again(self, mock_post):
        mock_post.return_value = fake_response(401, {'message': 'Bad credentials'})

        response = self.client.post('/login/', {'email': 'ann@example.com', 'password': 'bad'})

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Login failed. Check your email and password.')

    def test_guarded_page_redirects_without_token(self):
        response = self.client.get('/admin/inventory/')
        self.assertRedirects(response, '/login/?next=%2Fadmin%2Finventory%2F', fetch_redirect_response=False)

    @mock.patch('main.api.requests.request')
    def test_expired_session_clears_cookies(self, mock_request):
        mock_request.return_value = fake_response(401, {'message': 'Unauthorized'})
        self.client.cookies['token'] = TOKEN

        response = self.client.get('/admin/users/')

        self.assertEqual(response.status_code, 302)
        self.assertTrue(response['Location'].startswith('/login/'))
        self.assertEqual(response.cookies['token'].value, '')

    def test_logout_clears_cookies(self):
        self.client.cookies['token'] = TOKEN
        response = self.client.post('/logout/')
        self.assertRedirects(response, '/login/', fetch_redirect_response=False)
        self.assertEqual(response.cookies['token'].value, '')


@override_settings(UPSTREAM_API_URL=UPSTREAM)
class RouteTests(TestCase):
    """Root redirect, placeholder data route, proxy and response headers"""

    def test_root_redirects_to_inventory(self):
        response = self.client.get('/')
        self.assertEqual(response.status_code, 301)
        self.assertEqual(response['Location'], '/admin/inventory/')

    def test_api_data_returns_encoded_string(self):
        response = self.client.get('/api/data')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.content), json.dumps({'data': 'data'}))

    def test_api_data_accepts_form_posts(self):
        response = self.client.post('/api/data', {'field': 'value'})
        self.assertEqual(response.status_code, 200)

    def test_security_headers(self):
        response = self.client.get('/login/')
        self.assertEqual(response['Referrer-Policy'], 'strict-origin-when-cross-origin')
        self.assertIn('camera=()', response['Permissions-Policy'])

    @mock.patch('main.views.requests.request')
    def test_proxy_forwards_with_cookie_token(self, mock_request):
        mock_request.return_value = fake_response(200, envelope([]), headers={'Connection': 'keep-alive'})
        self.client.cookies['token'] = TOKEN

        response = self.client.get('/v1/api/users', {'page': 0})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.content), envelope([]))
        self.assertFalse(response.has_header('Connection'))
        method, url = mock_request.call_args.args
        self.assertEqual((method, url), ('GET', UPSTREAM + '/api/users?page=0'))
        self.assertEqual(mock_request.call_args.kwargs['headers']['Authorization'], f'Bearer {TOKEN}')

    @mock.patch('main.views.requests.request', side_effect=requests.exceptions.Timeout('slow'))
    def test_proxy_failure_is_bad_gateway(self, mock_request):
        response = self.client.get('/v1/storage/items/a.png')
        self.assertEqual(response.status_code, 502)


class ImageFieldTests(SimpleTestCase):
    """Image rules shared by every resource form"""

    class ImageForm(forms.Form):
        image = image_field()

    def errors_for(self, upload=None):
        form = self.ImageForm(data={}, files={'image': upload} if upload else {})
        form.is_valid()
        return form.errors.get('image', [])

    def test_image_is_required(self):
        self.assertEqual(self.errors_for(), [IMAGE_REQUIRED_MESSAGE])

    def test_image_over_2mb_is_rejected(self):
        big = png_upload(content=b'x' * 2_000_001)
        self.assertIn(IMAGE_SIZE_MESSAGE, self.errors_for(big))

    def test_unsupported_type_is_rejected(self):
        gif = png_upload('anim.gif')
        gif.content_type = 'image/gif'
        self.assertEqual(self.errors_for(gif), [IMAGE_TYPE_MESSAGE])

    def test_valid_image(self):
        self.assertEqual(self.errors_for(png_upload()), [])

    def test_storage_helpers(self):
        self.assertEqual(storage_url('items/a.PNG'), '/v1/storage/items/a.PNG')
        self.assertEqual(storage_url(None), '')
        self.assertEqual(mime_type_for('items/a.PNG'), 'image/png')


class PaginationTests(SimpleTestCase):

    def test_params_from_query(self):
        params = ListParams.from_data(QueryDict('page=2&limit=25&search=+bolt+'))
        self.assertEqual(params, ListParams(page=2, limit=25, search='bolt'))

    def test_unknown_limit_falls_back_to_default(self):
        params = ListParams.from_data(QueryDict('page=-3&limit=7'))
        self.assertEqual(params, ListParams(page=0, limit=10))

    def test_new_search_resets_page(self):
        params = ListParams(page=4, limit=10, search='a')
        self.assertEqual(params.with_changes(search='ab').page, 0)
        self.assertEqual(params.with_changes(limit=5).page, 4)

    def test_query_string_omits_empty_search(self):
        self.assertEqual(ListParams().query_string(), '?page=0&limit=10')
        self.assertEqual(ListParams(search='x y').query_string(), '?page=0&limit=10&search=x+y')

    def test_pager_navigation(self):
        meta = Meta(totalItems=25, totalPages=3, itemsPerPage=10, currentPage=1)
        pager = Pager('/admin/users/', ListParams(page=1), items=[], meta=meta)

        self.assertEqual(pager.range_label, '11–20 of 25')
        self.assertTrue(pager.has_previous)
        self.assertTrue(pager.has_next)
        self.assertEqual(pager.next_url, '/admin/users/?page=2&limit=10')

    def test_empty_pager(self):
        pager = Pager('/admin/users/', ListParams())
        self.assertEqual(pager.range_label, '0–0 of 0')
        self.assertFalse(pager.has_next)
