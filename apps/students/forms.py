from django import forms
from django.contrib.auth import get_user_model
from django.utils.translation import gettext_lazy as _

from apps.corecode.utils import ROLE_PARENT
from .models import ChildProfile, ParentProfile, ClientProfile

User = get_user_model()


class ChildProfileForm(forms.ModelForm):
    """Student profile form"""

    class Meta:
        model = ChildProfile
        fields = [
            'first_name', 'last_name', 'date_of_birth', 'gender',
            'email', 'phone', 'address',
            'emergency_contact_name', 'emergency_contact_phone',
            'parent', 'parent_profile',
            'medical_conditions', 'allergies', 'special_needs', 'additional_needs',
            'notes', 'photo',
        ]
        widgets = {
            'date_of_birth': forms.DateInput(attrs={'type': 'date'}),
            'address': forms.Textarea(attrs={'rows': 2}),
            'medical_conditions': forms.Textarea(attrs={'rows': 2}),
            'allergies': forms.Textarea(attrs={'rows': 2}),
            'special_needs': forms.Textarea(attrs={'rows': 2}),
            'additional_needs': forms.Textarea(attrs={'rows': 2}),
            'notes': forms.Textarea(attrs={'rows': 3}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        # Only users in the Parents group can be picked as parent
        self.fields['parent'].queryset = User.objects.filter(
            groups__name=ROLE_PARENT
        ).order_by('last_name', 'first_name')
        self.fields['parent_profile'].queryset = ParentProfile.objects.select_related('user')


class ParentProfileForm(forms.ModelForm):
    first_name = forms.CharField(max_length=150)
    last_name = forms.CharField(max_length=150)
    email = forms.EmailField()

    class Meta:
        model = ParentProfile
        fields = ['phone', 'address', 'emergency_contact', 'occupation', 'company', 'notes']
        widgets = {
            'address': forms.Textarea(attrs={'rows': 2}),
            'notes': forms.Textarea(attrs={'rows': 3}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.instance.pk:
            self.fields['first_name'].initial = self.instance.user.first_name
            self.fields['last_name'].initial = self.instance.user.last_name
            self.fields['email'].initial = self.instance.user.email

    def clean_email(self):
        email = self.cleaned_data['email'].lower()
        existing = User.objects.filter(email__iexact=email)
        if self.instance.pk:
            existing = existing.exclude(pk=self.instance.user_id)
        if existing.exists():
            raise forms.ValidationError(_("A user with this email already exists"))
        return email


class ClientProfileForm(forms.ModelForm):
    class Meta:
        model = ClientProfile
        fields = [
            'phone', 'address', 'emergency_contact_name', 'emergency_contact_phone',
            'relationship_to_children', 'occupation', 'company',
            'preferred_contact_method', 'notes',
        ]
        widgets = {
            'address': forms.Textarea(attrs={'rows': 2}),
            'notes': forms.Textarea(attrs={'rows': 3}),
        }
