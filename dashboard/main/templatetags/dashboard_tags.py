from django import template

from main.images import storage_url as _storage_url

register = template.Library()


@register.filter
def storage_url(ref):
    return _storage_url(ref)


@register.simple_tag(takes_context=True)
def nav_active(context, prefix):
    request = context.get('request')
    if request and request.path.startswith(prefix):
        return 'active'
    return ''


@register.simple_tag
def list_link(pager, **extra):
    """URL of the current list page, optionally with extra query arguments"""
    return pager.params.url(pager.base_url, **extra)
