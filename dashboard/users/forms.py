from django import forms

from main.forms import ResourceForm, image_field

EMAIL_MESSAGE = 'Invalid email format.'


class UserCreateForm(ResourceForm):
    """Form for creating a user account"""

    tracked_fields = ('name', 'password')

    name = forms.CharField(
        min_length=2,
        error_messages={'required': 'Name is required', 'min_length': 'Name is required'},
        widget=forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'Full name'})
    )
    email = forms.EmailField(
        error_messages={'required': EMAIL_MESSAGE, 'invalid': EMAIL_MESSAGE},
        widget=forms.EmailInput(attrs={'class': 'form-control', 'placeholder': 'Email address'})
    )
    password = forms.CharField(
        min_length=2,
        error_messages={'required': 'Password is required', 'min_length': 'Password is required'},
        widget=forms.PasswordInput(attrs={'class': 'form-control', 'data-toggle-visibility': 'true'})
    )
    image = image_field()


class UserEditForm(ResourceForm):
    """Form for updating user info; a password entered here is changed separately"""

    tracked_fields = ('name', 'password')

    name = forms.CharField(
        min_length=2,
        error_messages={'required': 'Name is required', 'min_length': 'Name is required'},
        widget=forms.TextInput(attrs={'class': 'form-control'})
    )
    password = forms.CharField(
        required=False,
        help_text='Leave empty to keep the current password.',
        widget=forms.PasswordInput(attrs={'class': 'form-control', 'data-toggle-visibility': 'true'})
    )
    email = forms.EmailField(
        error_messages={'required': EMAIL_MESSAGE, 'invalid': EMAIL_MESSAGE},
        widget=forms.EmailInput(attrs={'class': 'form-control'})
    )
    image = image_field()

    @classmethod
    def initial_from(cls, user):
        # Passwords are write-only and never shown again
        return {'name': user.name, 'email': user.email}


class PasswordResetForm(forms.Form):
    """Inline password change from the users table"""
    password = forms.CharField(
        error_messages={'required': 'Password is required'},
        widget=forms.PasswordInput(attrs={'class': 'form-control', 'placeholder': 'New password'})
    )
