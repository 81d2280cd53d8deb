from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FacebookSelectors:
    """
    The mobile site changes its markup over time.
    Keep all UI selectors/text hooks here for easy maintenance.
    """

    # Login form
    email_field_id: str = "m_login_email"
    password_field_id: str = "m_login_password"
    login_button_text: str = "Log in"
    # Some accounts land on a "welcome back" variant before the credential form.
    welcome_text: str = "i already have an account"
    welcome_scan_selector: str = 'span,button,[role="button"],a,div'

    # Unauthenticated page detection
    login_form_selector: str = '#m_login_email, input[name="email"][type="text"], input[name="pass"]'
    login_like_url_pattern: str = r"checkpoint|two_step|approvals|recover"
    login_path_pattern: str = r"/login/"

    # Two-factor
    try_another_way_text: str = "Try another way"
    auth_app_radio_labels: tuple[str, ...] = ("authentication app", "get a code from your authentication app")
    code_input: str = 'input[aria-label="Code"],input[name="approvals_code"]'
    continue_text: str = "Continue"
    save_browser_button: str = '[role="button"][aria-label="Save"]'

    # Authenticated UI
    profile_button: str = '[role="button"][aria-label="Go to profile"]'
    profile_url_pattern: str = r"profile\.php|/profile/"
    heading: str = '[role="heading"]'
    logout_link: str = 'a[href*="/logout.php"]'
    settings_link: str = 'a[href^="/settings"]'
    messages_link: str = 'a[href^="/messages"]'
    friends_link: str = 'a[href^="/friends"]'

    # Elements considered when clicking by visible text, and what counts as actionable.
    clickable_scan_selector: str = 'button,[role="button"],a,div,span'
    actionable_selector: str = 'button,[role="button"],a'
    disabled_ancestor_selector: str = '[aria-disabled="true"],[disabled]'
