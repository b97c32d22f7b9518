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
from main.schemas import User, parse_response

from .forms import PasswordResetForm, UserCreateForm, UserEditForm

logger = logging.getLogger(__name__)

USERS_URL = "/v1/api/users"


def detail_url(slug):
    return f"{USERS_URL}/{quote(slug, safe='')}"


@token_required
def user_list(request):
    """Paginated, searchable user table with inline password reset"""
    params = ListParams.from_data(request.GET)
    client = ApiClient.from_request(request)

    listing = client.use_api(USERS_URL + params.query_string(), refetch_on_window_focus=True)
    if listing.is_error:
        messages.error(request, f"Failed to load users: {listing.error}")

    context = {
        "title": "Users",
        "params": params,
        "pager": pager_from_query(listing, User, reverse("users:list"), params),
        "delete_id": request.GET.get("delete", ""),
        "password_id": request.GET.get("password", ""),
        "password_form": PasswordResetForm(),
    }
    return render(request, "users/list.html", context)


@token_required
def create_user(request):
    """Create a new user account"""
    client = ApiClient.from_request(request)
    created = client.use_api(
        USERS_URL,
        method="POST",
        on_success=lambda data: messages.success(request, "Created Success"),
        on_error=lambda error: messages.error(request, f"Failed to create user: {error}"),
    )

    if request.method == "POST":
        form = UserCreateForm(request.POST, request.FILES)
        if form.is_valid():
            created.mutate(form.to_payload())
            if created.is_success:
                return redirect("users:list")
    else:
        form = UserCreateForm()

    context = {
        "title": "Create User",
        "form": form,
        "is_pending": created.is_pending,
    }
    return render(request, "users/form.html", context)


@token_required
def edit_user(request, slug):
    """
    Update a user's info and, when a new password was typed, the password.

    The two upstream calls are independent: one failing does not undo the
    other. Without a password the page returns to the list once the info
    update succeeds; with one, once both calls have finished and the
    password change succeeded.
    """
    client = ApiClient.from_request(request)

    detail = client.use_api(detail_url(slug))
    if detail.is_error:
        messages.error(request, f"Failed to load user: {detail.error}")
        return redirect("users:list")

    try:
        user = parse_response(detail.data, User).result
    except ValidationError as e:
        logger.warning(f"Unexpected user payload for {slug}: {str(e)}")
        messages.error(request, "Failed to load user: unexpected response")
        return redirect("users:list")

    stored_image = seed_image(client, user.image)

    update_info = client.use_api(
        f"{detail_url(slug)}/change-info",
        method="POST",
        invalidates=[[USERS_URL], [detail_url(slug)]],
        on_success=lambda data: messages.success(request, "Update Info Success"),
        on_error=lambda error: messages.error(request, f"Update Info Failed: {error}"),
    )
    update_password = client.use_api(
        f"{detail_url(slug)}/change-password",
        method="POST",
        on_success=lambda data: messages.success(request, "Update Password Success"),
        on_error=lambda error: messages.error(request, f"Update Password Failed: {error}"),
    )

    image_errors = []
    if request.method == "POST":
        files = {"image": request.FILES.get("image") or stored_image}
        form = UserEditForm(request.POST, files, populated=True)
        if form.is_valid():
            update_info.mutate(form.to_payload(exclude=("password",)))

            new_password = form.cleaned_data.get("password")
            if new_password:
                update_password.mutate({"password": new_password})
                if update_password.is_success:
                    return redirect("users:list")
            elif update_info.is_success:
                return redirect("users:list")
    else:
        form = UserEditForm(initial=UserEditForm.initial_from(user), populated=True)
        image_errors = form.seeded_file_errors("image", stored_image)

    context = {
        "title": "Edit Users",
        "form": form,
        "record": user,
        "preview_url": storage_url(user.image) if stored_image else "",
        "image_errors": image_errors,
        "is_pending": update_info.is_pending or update_password.is_pending,
    }
    return render(request, "users/form.html", context)


@require_POST
@token_required
def delete_user(request, slug):
    """Delete a user confirmed from the list dialog"""
    params = ListParams.from_data(request.POST)
    list_url = reverse("users:list")
    client = ApiClient.from_request(request)

    deleted = client.use_api(
        detail_url(slug),
        method="DELETE",
        query_key=[USERS_URL],
        invalidates=[[detail_url(slug)]],
        on_success=lambda data: messages.success(request, "Delete Success"),
        on_error=lambda error: messages.error(request, f"Delete Failed: {error}"),
    )
    deleted.mutate()

    if deleted.is_success:
        return redirect(params.url(list_url))
    return redirect(params.url(list_url, delete=slug))


@require_POST
@token_required
def change_password(request, slug):
    """Password reset submitted from the users table dialog"""
    params = ListParams.from_data(request.POST)
    list_url = reverse("users:list")

    form = PasswordResetForm(request.POST)
    if not form.is_valid():
        for field, errors in form.errors.items():
            for error in errors:
                messages.error(request, f"{field}: {error}")
        return redirect(params.url(list_url, password=slug))

    client = ApiClient.from_request(request)
    updated = client.use_api(
        f"{detail_url(slug)}/change-password",
        method="POST",
        on_success=lambda data: messages.success(request, "Update Password Success"),
        on_error=lambda error: messages.error(request, f"Update Password Failed: {error}"),
    )
    updated.mutate({"password": form.cleaned_data["password"]})

    if updated.is_success:
        # Dialog closes and its input starts empty again
        return redirect(params.url(list_url))
    return redirect(params.url(list_url, password=slug))
