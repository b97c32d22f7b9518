"""
User pages against a stubbed upstream, focusing on the two-step edit
and the inline password dialog.
"""
from unittest import mock

from django.contrib.messages import get_messages
from django.core.cache import cache
from django.test import TestCase, override_settings

from main.test_utils import (
    PNG_BYTES, TOKEN, UPSTREAM, UpstreamStub, envelope, fake_response, list_meta, png_upload,
)

ANN = {
    'id': 'u1',
    'name': 'Ann',
    'email': 'ann@example.com',
    'password': 'hashed-secret',
    'image': 'users/ann.webp',
    'isImmutable': True,
}
BOB = {
    'id': 'u2',
    'name': 'Bob',
    'email': 'bob@example.com',
    'image': None,
    'isImmutable': False,
}

EDIT_FORM = {'name': 'Ann Lee', 'email': 'ann@example.com'}


def messages_of(response):
    return [str(m) for m in get_messages(response.wsgi_request)]


@override_settings(UPSTREAM_API_URL=UPSTREAM, QUERY_STALE_TIME=30)
class UserViewTests(TestCase):

    def setUp(self):
        cache.clear()
        self.client.cookies['token'] = TOKEN
        self.stub = UpstreamStub({
            ('GET', '/api/users?page=0&limit=10'):
                fake_response(200, envelope([ANN, BOB], meta=list_meta(2))),
            ('GET', '/api/users/u1'): fake_response(200, envelope(ANN)),
            ('POST', '/api/users'): fake_response(201, envelope(ANN)),
            ('POST', '/api/users/u1/change-info'): fake_response(200, envelope(ANN)),
            ('POST', '/api/users/u1/change-password'): fake_response(200, envelope(None)),
            ('DELETE', '/api/users/u1'): fake_response(200, envelope(None)),
        })
        patcher = mock.patch('main.api.requests.request', side_effect=self.stub)
        patcher.start()
        self.addCleanup(patcher.stop)

        image_patcher = mock.patch('main.api.requests.get')
        mock_get = image_patcher.start()
        mock_get.return_value = fake_response(200, content=PNG_BYTES, headers={'Content-Type': 'image/webp'})
        self.addCleanup(image_patcher.stop)

    def test_list_shows_active_badges(self):
        response = self.client.get('/admin/users/')

        self.assertContains(response, 'ann@example.com')
        self.assertContains(response, 'Active')
        self.assertContains(response, 'Inactive')
        self.assertContains(response, 'No Picture')
        self.assertNotContains(response, 'hashed-secret')

    def test_password_link_opens_dialog(self):
        response = self.client.get('/admin/users/', {'password': 'u1'})
        self.assertContains(response, 'action="/admin/users/u1/change-password/"')
        self.assertContains(response, 'Update Password')

    def test_edit_form_never_shows_password(self):
        response = self.client.get('/admin/users/edit/u1/')

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'value="Ann"')
        self.assertNotContains(response, 'hashed-secret')

    def test_edit_without_password_sends_info_only(self):
        response = self.client.post('/admin/users/edit/u1/', EDIT_FORM)

        self.assertRedirects(response, '/admin/users/', fetch_redirect_response=False)
        self.assertIn('Update Info Success', messages_of(response))
        parts = self.stub.calls_to('POST', '/api/users/u1/change-info')[0]['files']
        self.assertIn(('name', (None, 'Ann Lee')), parts)
        self.assertIn(('image', ('ann.webp', PNG_BYTES, 'image/webp')), parts)
        self.assertNotIn('password', [name for name, _ in parts])
        self.assertEqual(self.stub.calls_to('POST', '/api/users/u1/change-password'), [])

    def test_edit_with_password_issues_both_requests(self):
        response = self.client.post('/admin/users/edit/u1/', dict(EDIT_FORM, password='new-secret'))

        self.assertRedirects(response, '/admin/users/', fetch_redirect_response=False)
        posted = [(m, p) for m, p, _ in self.stub.calls if m == 'POST']
        self.assertEqual(posted, [
            ('POST', '/api/users/u1/change-info'),
            ('POST', '/api/users/u1/change-password'),
        ])
        self.assertEqual(self.stub.calls_to('POST', '/api/users/u1/change-password')[0]['json'],
                         {'password': 'new-secret'})
        self.assertEqual(messages_of(response), ['Update Info Success', 'Update Password Success'])

    def test_failed_password_keeps_form_open(self):
        self.stub.routes[('POST', '/api/users/u1/change-password')] = \
            fake_response(400, {'message': 'Password too weak'})

        response = self.client.post('/admin/users/edit/u1/', dict(EDIT_FORM, password='x'))

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Update Info Success')
        self.assertContains(response, 'Update Password Failed: Password too weak')

    def test_failed_info_without_password_keeps_form_open(self):
        self.stub.routes[('POST', '/api/users/u1/change-info')] = fake_response(422, {'message': 'Email taken'})

        response = self.client.post('/admin/users/edit/u1/', EDIT_FORM)

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Update Info Failed: Email taken')

    def test_create_sends_one_multipart_post(self):
        response = self.client.post('/admin/users/create/', {
            'name': 'Cy',
            'email': 'cy@example.com',
            'password': 'pw',
            'image': png_upload(),
        })

        self.assertRedirects(response, '/admin/users/', fetch_redirect_response=False)
        self.assertIn('Created Success', messages_of(response))
        calls = self.stub.calls_to('POST', '/api/users')
        self.assertEqual(len(calls), 1)
        self.assertIn(('email', (None, 'cy@example.com')), calls[0]['files'])
        self.assertIn(('password', (None, 'pw')), calls[0]['files'])
        self.assertIn(('image', ('photo.png', PNG_BYTES, 'image/png')), calls[0]['files'])

    def test_list_opts_into_focus_reload(self):
        response = self.client.get('/admin/users/')
        self.assertContains(response, '<body data-refetch-on-focus>')

    def test_create_requires_valid_email(self):
        response = self.client.post('/admin/users/create/', {'name': 'Cy', 'email': 'nope', 'password': 'pw'})

        self.assertContains(response, 'Invalid email format.')
        self.assertEqual(self.stub.calls_to('POST', '/api/users'), [])

    def test_change_password_requires_value(self):
        response = self.client.post('/admin/users/u1/change-password/', {'page': '0', 'limit': '10'})

        self.assertRedirects(response, '/admin/users/?page=0&limit=10&password=u1', fetch_redirect_response=False)
        self.assertEqual(self.stub.calls_to('POST', '/api/users/u1/change-password'), [])

    def test_change_password_success_closes_dialog(self):
        response = self.client.post('/admin/users/u1/change-password/',
                                    {'page': '0', 'limit': '10', 'password': 'fresh'})

        self.assertRedirects(response, '/admin/users/?page=0&limit=10', fetch_redirect_response=False)
        self.assertIn('Update Password Success', messages_of(response))

    def test_change_password_failure_keeps_dialog(self):
        self.stub.routes[('POST', '/api/users/u1/change-password')] = fake_response(500, {'message': 'Oops'})

        response = self.client.post('/admin/users/u1/change-password/',
                                    {'page': '0', 'limit': '10', 'password': 'fresh'})

        self.assertRedirects(response, '/admin/users/?page=0&limit=10&password=u1', fetch_redirect_response=False)
        self.assertIn('Update Password Failed: Oops', messages_of(response))

    def test_delete_user(self):
        response = self.client.post('/admin/users/u1/delete/', {'page': '0', 'limit': '10'})

        self.assertRedirects(response, '/admin/users/?page=0&limit=10', fetch_redirect_response=False)
        self.assertIn('Delete Success', messages_of(response))
