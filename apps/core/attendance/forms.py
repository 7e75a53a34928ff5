from django import forms
from django.conf import settings


class AttendanceSessionStartForm(forms.Form):
    course_code = forms.CharField(max_length=40)
    class_id = forms.CharField(max_length=64)
    topic = forms.CharField(max_length=200, required=False)
    timer_minutes = forms.IntegerField(min_value=1)

    def clean_course_code(self):
        return self.cleaned_data['course_code'].strip()

    def clean_class_id(self):
        value = self.cleaned_data['class_id'].strip()
        if not value:
            raise forms.ValidationError('Class id is required.')
        return value

    def clean_timer_minutes(self):
        value = self.cleaned_data['timer_minutes']
        max_minutes = int(getattr(settings, 'ATTENDANCE_MAX_TIMER_MINUTES', 180))
        if value > max_minutes:
            raise forms.ValidationError(f'Timer cannot exceed {max_minutes} minutes.')
        return value
