"""Page automation components for driving the job site."""

from jobnick_agent.browser.surface import PageAutomationSurface, SurfaceAction, classify_page, is_target_site
from jobnick_agent.browser.tabs import ResourceTracker
from jobnick_agent.browser.playwright_surface import PlaywrightSurface

__all__ = [
    "PageAutomationSurface", "SurfaceAction", "classify_page", "is_target_site",
    "ResourceTracker",
    "PlaywrightSurface",
]
