import logging
from urllib.parse import quote

from django.contrib import messages
from django.shortcuts import redirect, render
from django.urls import reverse
from django.views.decorators.http import require_POST
from pydantic import ValidationError

from main.api import ApiClient
from main.decorators import token_required
from main.images import seed_image, storage_url
from main.pagination import ListParams, pager_from_query
from main.schemas import InventoryItem, parse_response

from .forms import InventoryForm

logger = logging.getLogger(__name__)

INVENTORIES_URL = "/v1/api/inventories"


def detail_url(slug):
    return f"{INVENTORIES_URL}/{quote(slug, safe='')}"


@token_required
def inventory_list(request):
    """Paginated, searchable inventory table"""
    params = ListParams.from_data(request.GET)
    client = ApiClient.from_request(request)

    listing = client.use_api(INVENTORIES_URL + params.query_string(), refetch_on_window_focus=True)
    if listing.is_error:
        messages.error(request, f"Failed to load inventory: {listing.error}")

    context = {
        "title": "Inventory",
        "params": params,
        "pager": pager_from_query(listing, InventoryItem, reverse("inventory:list"), params),
        "delete_id": request.GET.get("delete", ""),
    }
    return render(request, "inventory/list.html", context)


@token_required
def create_inventory(request):
    """Create a new inventory item"""
    client = ApiClient.from_request(request)
    created = client.use_api(
        INVENTORIES_URL,
        method="POST",
        on_success=lambda data: messages.success(request, "Created Success"),
        on_error=lambda error: messages.error(request, f"Failed to create inventory: {error}"),
    )

    if request.method == "POST":
        form = InventoryForm(request.POST, request.FILES)
        if form.is_valid():
            created.mutate(form.to_payload())
            if created.is_success:
                return redirect("inventory:list")
    else:
        form = InventoryForm()

    context = {
        "title": "Create Inventory",
        "form": form,
        "is_pending": created.is_pending,
    }
    return render(request, "inventory/form.html", context)


@token_required
def edit_inventory(request, slug):
    """Edit an existing inventory item; the stored image counts as the current selection"""
    client = ApiClient.from_request(request)

    detail = client.use_api(detail_url(slug))
    if detail.is_error:
        messages.error(request, f"Failed to load inventory: {detail.error}")
        return redirect("inventory:list")

    try:
        item = parse_response(detail.data, InventoryItem).result
    except ValidationError as e:
        logger.warning(f"Unexpected inventory payload for {slug}: {str(e)}")
        messages.error(request, "Failed to load inventory: unexpected response")
        return redirect("inventory:list")

    stored_image = seed_image(client, item.image)

    updated = client.use_api(
        detail_url(slug),
        method="POST",
        invalidates=[[INVENTORIES_URL]],
        on_success=lambda data: messages.success(request, "Update Success"),
        on_error=lambda error: messages.error(request, f"Failed to update inventory: {error}"),
    )

    image_errors = []
    if request.method == "POST":
        files = {"image": request.FILES.get("image") or stored_image}
        form = InventoryForm(request.POST, files, populated=True)
        if form.is_valid():
            updated.mutate(form.to_payload())
            if updated.is_success:
                return redirect("inventory:list")
    else:
        form = InventoryForm(initial=InventoryForm.initial_from(item), populated=True)
        image_errors = form.seeded_file_errors("image", stored_image)

    context = {
        "title": "Edit Inventory",
        "form": form,
        "record": item,
        "preview_url": storage_url(item.image) if stored_image else "",
        "image_errors": image_errors,
        "is_pending": updated.is_pending,
    }
    return render(request, "inventory/form.html", context)


@require_POST
@token_required
def delete_inventory(request, slug):
    """Delete an inventory item confirmed from the list dialog"""
    params = ListParams.from_data(request.POST)
    list_url = reverse("inventory:list")
    client = ApiClient.from_request(request)

    deleted = client.use_api(
        detail_url(slug),
        method="DELETE",
        query_key=[INVENTORIES_URL],
        invalidates=[[detail_url(slug)]],
        on_success=lambda data: messages.success(request, "Delete Success"),
        on_error=lambda error: messages.error(request, f"Delete Failed: {error}"),
    )
    deleted.mutate()

    if deleted.is_success:
        return redirect(params.url(list_url))
    # Keep the confirmation dialog open
    return redirect(params.url(list_url, delete=slug))
