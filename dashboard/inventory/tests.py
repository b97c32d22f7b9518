"""
Inventory pages against a stubbed upstream: listing, create, edit with a
stored image, and delete with list refresh.
"""
from unittest import mock

from django.contrib.messages import get_messages
from django.core.cache import cache
from django.test import TestCase, override_settings

from inventory.forms import InventoryForm
from inventory.views import detail_url
from main.api import token_namespace
from main.forms import IMAGE_TYPE_MESSAGE
from main.query_cache import QueryCache
from main.test_utils import (
    PNG_BYTES, TOKEN, UPSTREAM, UpstreamStub, envelope, fake_response, list_meta, png_upload,
)

WIDGET = {
    'id': 'abc',
    'name': 'Widget',
    'code': 'W1',
    'description': 'Small widget',
    'stockQuantity': 5,
    'image': 'items/widget.png',
}


def messages_of(response):
    return [str(m) for m in get_messages(response.wsgi_request)]


@override_settings(UPSTREAM_API_URL=UPSTREAM, QUERY_STALE_TIME=30)
class InventoryViewTests(TestCase):

    def setUp(self):
        cache.clear()
        self.client.cookies['token'] = TOKEN
        self.stub = UpstreamStub({
            ('GET', '/api/inventories?page=0&limit=10'):
                fake_response(200, envelope([WIDGET], meta=list_meta(1))),
            ('GET', '/api/inventories/abc'): fake_response(200, envelope(WIDGET)),
            ('POST', '/api/inventories'): fake_response(201, envelope(WIDGET)),
            ('POST', '/api/inventories/abc'): fake_response(200, envelope(WIDGET)),
            ('DELETE', '/api/inventories/abc'): fake_response(200, envelope(None)),
        })
        patcher = mock.patch('main.api.requests.request', side_effect=self.stub)
        patcher.start()
        self.addCleanup(patcher.stop)

        image_patcher = mock.patch('main.api.requests.get')
        self.mock_get = image_patcher.start()
        self.mock_get.return_value = fake_response(200, content=PNG_BYTES,
                                                   headers={'Content-Type': 'image/png'})
        self.addCleanup(image_patcher.stop)

    def cached_list(self):
        query_cache = QueryCache(namespace=token_namespace(TOKEN))
        return query_cache.get(['/v1/api/inventories', 'page=0&limit=10'], stale_time=30)

    def test_list_renders_rows_and_search(self):
        response = self.client.get('/admin/inventory/')

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Widget')
        self.assertContains(response, '/v1/storage/items/widget.png')
        self.assertContains(response, '1–1 of 1')
        self.assertContains(response, 'data-debounce="1000"')

    def test_list_is_cached_between_visits(self):
        self.client.get('/admin/inventory/')
        self.client.get('/admin/inventory/')
        self.assertEqual(len(self.stub.calls_to('GET', '/api/inventories?page=0&limit=10')), 1)

    def test_list_failure_shows_message(self):
        self.stub.routes[('GET', '/api/inventories?page=0&limit=10')] = \
            fake_response(500, {'message': 'Database down'})

        response = self.client.get('/admin/inventory/')

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Failed to load inventory: Database down')
        self.assertContains(response, 'No data')

    def test_delete_link_opens_dialog(self):
        response = self.client.get('/admin/inventory/', {'delete': 'abc'})
        self.assertContains(response, 'Delete Inventory')
        self.assertContains(response, 'action="/admin/inventory/abc/delete/"')

    def test_create_posts_multipart_and_redirects(self):
        self.client.get('/admin/inventory/')

        response = self.client.post('/admin/inventory/create/', {
            'name': 'Widget',
            'code': 'W1',
            'description': 'Small widget',
            'stock_quantity': '5',
            'image': png_upload(),
        })

        self.assertRedirects(response, '/admin/inventory/', fetch_redirect_response=False)
        self.assertIn('Created Success', messages_of(response))

        parts = self.stub.calls_to('POST', '/api/inventories')[0]['files']
        self.assertIn(('name', (None, 'Widget')), parts)
        self.assertIn(('code', (None, 'W1')), parts)
        self.assertIn(('description', (None, 'Small widget')), parts)
        self.assertIn(('stockQuantity', (None, '5')), parts)
        self.assertIn(('image', ('photo.png', PNG_BYTES, 'image/png')), parts)

        # The create key is a prefix of every list page
        self.assertIsNone(self.cached_list())

    def test_create_without_image_is_not_sent(self):
        response = self.client.post('/admin/inventory/create/', {
            'name': 'Widget',
            'code': 'W1',
            'description': 'Small widget',
            'stock_quantity': '0',
        })

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Image is required')
        self.assertContains(response, 'Min 1')
        self.assertEqual(self.stub.calls_to('POST', '/api/inventories'), [])

    def test_create_failure_stays_on_form(self):
        self.stub.routes[('POST', '/api/inventories')] = fake_response(409, {'message': 'Code already used'})

        response = self.client.post('/admin/inventory/create/', {
            'name': 'Widget',
            'code': 'W1',
            'description': 'Small widget',
            'stock_quantity': '5',
            'image': png_upload(),
        })

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Failed to create inventory: Code already used')

    def test_edit_form_is_seeded_from_record(self):
        response = self.client.get('/admin/inventory/edit/abc/')

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'value="Widget"')
        self.assertContains(response, 'src="/v1/storage/items/widget.png"')
        self.assertContains(response, 'data-dirty="true"')
        self.assertEqual(self.mock_get.call_args.args[0], UPSTREAM + '/storage/items/widget.png')

    def test_edit_resends_stored_image(self):
        self.client.get('/admin/inventory/')

        response = self.client.post('/admin/inventory/edit/abc/', {
            'name': 'Widget v2',
            'code': 'W1',
            'description': 'Small widget',
            'stock_quantity': '7',
        })

        self.assertRedirects(response, '/admin/inventory/', fetch_redirect_response=False)
        self.assertIn('Update Success', messages_of(response))
        parts = self.stub.calls_to('POST', '/api/inventories/abc')[0]['files']
        self.assertIn(('name', (None, 'Widget v2')), parts)
        self.assertIn(('image', ('widget.png', PNG_BYTES, 'image/png')), parts)
        self.assertIsNone(self.cached_list())

    def test_edit_missing_record_returns_to_list(self):
        response = self.client.get('/admin/inventory/edit/nope/')
        self.assertRedirects(response, '/admin/inventory/', fetch_redirect_response=False)
        self.assertIn('Failed to load inventory: Not found', messages_of(response))

    def test_delete_refreshes_list(self):
        self.client.get('/admin/inventory/')
        self.assertIsNotNone(self.cached_list())

        response = self.client.post('/admin/inventory/abc/delete/', {'page': '0', 'limit': '10'})

        self.assertRedirects(response, '/admin/inventory/?page=0&limit=10', fetch_redirect_response=False)
        self.assertIn('Delete Success', messages_of(response))
        self.assertIsNone(self.cached_list())
        self.assertNotIn('json', self.stub.calls_to('DELETE', '/api/inventories/abc')[0])

    def test_delete_failure_keeps_dialog_open(self):
        self.stub.routes[('DELETE', '/api/inventories/abc')] = fake_response(500, {'message': 'Locked'})

        response = self.client.post('/admin/inventory/abc/delete/', {'page': '1', 'limit': '5', 'search': 'wid'})

        self.assertRedirects(response, '/admin/inventory/?page=1&limit=5&search=wid&delete=abc',
                             fetch_redirect_response=False)
        self.assertIn('Delete Failed: Locked', messages_of(response))

    def test_delete_requires_post(self):
        response = self.client.get('/admin/inventory/abc/delete/')
        self.assertEqual(response.status_code, 405)


class InventoryFormTests(TestCase):

    def test_blank_form_is_clean(self):
        self.assertFalse(InventoryForm().is_dirty())

    def test_typing_in_tracked_field_marks_dirty(self):
        form = InventoryForm(data={'name': 'W'})
        self.assertTrue(form.is_dirty())

    def test_populated_form_starts_dirty(self):
        self.assertTrue(InventoryForm(populated=True).is_dirty())

    def test_tracked_widgets_are_marked(self):
        form = InventoryForm()
        self.assertEqual(form.fields['name'].widget.attrs['data-track-dirty'], 'true')
        self.assertNotIn('data-track-dirty', form.fields['image'].widget.attrs)


@override_settings(UPSTREAM_API_URL=UPSTREAM, QUERY_STALE_TIME=30)
class InventoryEdgeCaseTests(TestCase):
    """Stored images that fail validation, focus reloads and unusual ids"""

    def setUp(self):
        cache.clear()
        self.client.cookies['token'] = TOKEN
        self.stub = UpstreamStub({
            ('GET', '/api/inventories?page=0&limit=10'):
                fake_response(200, envelope([WIDGET], meta=list_meta(1))),
            ('GET', '/api/inventories/gif'):
                fake_response(200, envelope(dict(WIDGET, id='gif', image='items/a.gif'))),
        })
        patcher = mock.patch('main.api.requests.request', side_effect=self.stub)
        patcher.start()
        self.addCleanup(patcher.stop)

        image_patcher = mock.patch('main.api.requests.get')
        mock_get = image_patcher.start()
        mock_get.return_value = fake_response(200, content=b'GIF89a', headers={'Content-Type': 'image/gif'})
        self.addCleanup(image_patcher.stop)

    def test_stored_image_of_unsupported_type_is_flagged(self):
        response = self.client.get('/admin/inventory/edit/gif/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['image_errors'], [IMAGE_TYPE_MESSAGE])
        self.assertContains(response, IMAGE_TYPE_MESSAGE)

    def test_list_opts_into_focus_reload(self):
        response = self.client.get('/admin/inventory/')
        self.assertContains(response, '<body data-refetch-on-focus>')

    def test_focus_reload_skips_cached_list(self):
        self.client.get('/admin/inventory/')
        self.client.get('/admin/inventory/')
        self.client.get('/admin/inventory/', {'refetch': 'focus'})
        self.assertEqual(len(self.stub.calls_to('GET', '/api/inventories?page=0&limit=10')), 2)

    def test_id_is_escaped_in_upstream_path(self):
        self.assertEqual(detail_url('x?a=b'), '/v1/api/inventories/x%3Fa%3Db')

        response = self.client.get('/admin/inventory/edit/x%3Fa=b/')

        self.assertRedirects(response, '/admin/inventory/', fetch_redirect_response=False)
        self.assertEqual([path for _, path, _ in self.stub.calls], ['/api/inventories/x%3Fa%3Db'])
