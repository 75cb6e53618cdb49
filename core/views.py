from django.http import HttpResponse

from .readiness import is_ready


def health_check(request):
    """Return ``ok`` once the startup schema phase has completed."""
    if not is_ready():
        return HttpResponse("starting", status=503)
    return HttpResponse("ok")
