from django import forms

from main.forms import ResourceForm, image_field


class InventoryForm(ResourceForm):
    """Form for creating and editing inventory items"""

    tracked_fields = ('stock_quantity', 'code', 'name', 'description')
    api_names = {'stock_quantity': 'stockQuantity'}

    name = forms.CharField(
        min_length=2,
        error_messages={'required': 'Name is required', 'min_length': 'Name is required'},
        widget=forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'Item name'})
    )
    code = forms.CharField(
        min_length=2,
        error_messages={'required': 'Code is required', 'min_length': 'Code is required'},
        widget=forms.TextInput(attrs={'class': 'form-control', 'placeholder': 'e.g., W1'})
    )
    description = forms.CharField(
        min_length=2,
        error_messages={'required': 'Description is required', 'min_length': 'Description is required'},
        widget=forms.Textarea(attrs={'class': 'form-control', 'rows': 3})
    )
    stock_quantity = forms.IntegerField(
        label='Stock Quantity',
        min_value=1,
        initial=1,
        error_messages={
            'required': 'Must be a number',
            'invalid': 'Must be a number',
            'min_value': 'Min 1',
        },
        widget=forms.NumberInput(attrs={'class': 'form-control', 'min': '1'})
    )
    image = image_field()

    @classmethod
    def initial_from(cls, item):
        return {
            'name': item.name,
            'code': item.code,
            'description': item.description,
            'stock_quantity': item.stock_quantity,
        }
