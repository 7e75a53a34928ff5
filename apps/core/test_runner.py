from django.apps import apps
from django.conf import settings
from django.test.runner import DiscoverRunner


def local_app_modules():
    """Module paths of the project's own apps, in settings order."""
    local = set(getattr(settings, 'LOCAL_APPS', ()))
    return [
        app_config.name
        for app_config in apps.get_app_configs()
        if f'{app_config.name}.apps.{app_config.__class__.__name__}' in local
    ]


class LocalAppsDiscoverRunner(DiscoverRunner):
    def build_suite(self, test_labels=None, **kwargs):
        return super().build_suite(test_labels=test_labels or local_app_modules(), **kwargs)
