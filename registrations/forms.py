from django import forms

from .models import OfferingKind


# site locale -> LiqPay checkout language
CHECKOUT_LANGUAGES = {
    "en": "en",
    "ua": "uk",
    "uk": "uk",
}


class RegistrationSubmitForm(forms.Form):
    """Body of the registration form as the site posts it (camelCase keys)."""

    firstName = forms.CharField(max_length=120, strip=True)
    lastName = forms.CharField(max_length=120, strip=True)
    email = forms.EmailField()
    number = forms.CharField(max_length=32, required=False, strip=True)
    instagram = forms.CharField(max_length=64, required=False, strip=True)
    lang = forms.ChoiceField(choices=[(k, k) for k in CHECKOUT_LANGUAGES], required=False)

    selectedEventId = forms.IntegerField(min_value=1, required=False)
    selectedCourseId = forms.IntegerField(min_value=1, required=False)

    def clean(self):
        cleaned = super().clean()
        event_id = cleaned.get("selectedEventId")
        course_id = cleaned.get("selectedCourseId")

        if self.has_error("selectedEventId") or self.has_error("selectedCourseId"):
            return cleaned
        if event_id and course_id:
            raise forms.ValidationError("Select either an event or a course, not both.")
        if not event_id and not course_id:
            raise forms.ValidationError("Please select an event or a course.")
        return cleaned

    def selection(self) -> tuple[str, int]:
        event_id = self.cleaned_data.get("selectedEventId")
        if event_id:
            return OfferingKind.EVENT, event_id
        return OfferingKind.COURSE, self.cleaned_data["selectedCourseId"]

    def checkout_language(self) -> str:
        return CHECKOUT_LANGUAGES.get(self.cleaned_data.get("lang") or "en", "en")
