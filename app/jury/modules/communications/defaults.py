"""
Built-in fallback content used when no active template exists for a category.
"""
from __future__ import annotations

CATEGORY_JUROR_INVITATION = "juror_invitation"
CATEGORY_ASSIGNMENT_NOTIFICATION = "assignment-notification"
CATEGORY_JUROR_REMINDER = "juror-reminder"
CATEGORY_FOUNDER_REJECTION = "founder_rejection"
CATEGORY_FOUNDER_SELECTION = "founder_selection"
CATEGORY_PITCH_SCHEDULING = "pitch_scheduling"
CATEGORY_CM_INVITATION = "cm_invitation"
CATEGORY_PASSWORD_RESET = "password-reset"
CATEGORY_JUROR_PHASE_TRANSITION = "juror-phase-transition"
CATEGORY_JUROR_LOGIN_REMINDER = "juror-login-reminder"

COMMUNICATION_TYPES = ("under-review", "selection", "rejection", "general")

_UNDER_REVIEW = {
    "juror_invitation",
    "juror-reminder",
    "assignment-notification",
    "pitch-scheduling",
    "pitch_scheduling",
    "juror-phase-transition",
    "juror-login-reminder",
}
_SELECTION = {"founder_selection", "screening-results", "pitching-results"}
_REJECTION = {"founder_rejection"}


def map_category_to_communication_type(category: str | None) -> str:
    if category in _UNDER_REVIEW:
        return "under-review"
    if category in _SELECTION:
        return "selection"
    if category in _REJECTION:
        return "rejection"
    return "general"


def _wrap(title: str, body: str, cta_text: str | None = None, cta_link: str | None = None) -> str:
    cta = ""
    if cta_text and cta_link:
        cta = (
            f'<p style="margin:24px 0;"><a href="{cta_link}" '
            'style="background:#4f46e5;color:#fff;padding:12px 20px;border-radius:6px;text-decoration:none;">'
            f"{cta_text}</a></p>"
        )
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;color:#1f2937;">'
        f'<h2 style="color:#312e81;">{title}</h2>{body}{cta}'
        '<p style="color:#6b7280;font-size:12px;">Startup Awards evaluation team</p></div>'
    )


DEFAULT_CONTENT: dict[str, dict[str, str]] = {
    CATEGORY_JUROR_INVITATION: {
        "subject": "You're invited to join the jury - complete your registration",
        "body": _wrap(
            "You're Invited as a Juror",
            "<p>Dear <strong>{{juror_name}}</strong>,</p>"
            "<p>You have been selected to join the evaluation panel. Please complete your profile, "
            "review the evaluation criteria and start on your assigned startups.</p>"
            "<p>This invitation expires on <strong>{{invitation_expires_at}}</strong>.</p>",
            "Complete Registration",
            "{{invitation_link}}",
        ),
    },
    CATEGORY_ASSIGNMENT_NOTIFICATION: {
        "subject": "New startup assignments - {{round_name}} round",
        "body": _wrap(
            "New Assignments",
            "<p>Dear <strong>{{juror_name}}</strong>,</p>"
            "<p>You have <strong>{{assignment_count}}</strong> startup(s) to evaluate in the "
            "{{round_name}} round.</p>",
            "Open Dashboard",
            "{{login_link}}",
        ),
    },
    CATEGORY_JUROR_REMINDER: {
        "subject": "Reminder: {{pending_count}} evaluations pending - {{round_name}}",
        "body": _wrap(
            "Evaluation Reminder",
            "<p>Dear <strong>{{juror_name}}</strong>,</p>"
            "<p>You have completed {{completion_rate}}% of your {{round_name}} evaluations. "
            "<strong>{{pending_count}}</strong> evaluation(s) are still pending.</p>",
            "Continue Evaluating",
            "{{login_link}}",
        ),
    },
    CATEGORY_FOUNDER_REJECTION: {
        "subject": "Evaluation update - {{startup_name}}",
        "body": _wrap(
            "Thank You for Participating",
            "<p>Dear {{founder_name}},</p>"
            "<p>Thank you for submitting <strong>{{startup_name}}</strong>. After careful review the jury "
            "has decided not to move forward this time.</p><p>{{feedback_summary}}</p>",
        ),
    },
    CATEGORY_FOUNDER_SELECTION: {
        "subject": "Congratulations! {{startup_name}} selected for the next round",
        "body": _wrap(
            "You're Through to the Next Round",
            "<p>Dear {{founder_name}},</p>"
            "<p><strong>{{startup_name}}</strong> has been selected for the next round.</p>"
            "<p>{{feedback_summary}}</p>",
        ),
    },
    CATEGORY_PITCH_SCHEDULING: {
        "subject": "Schedule your pitch - {{startup_name}} x {{juror_name}}",
        "body": _wrap(
            "Schedule Your Pitch",
            "<p>Dear {{founder_name}},</p>"
            "<p>{{juror_name}} would like to hear your pitch. Please book a slot using the link below.</p>",
            "Book a Slot",
            "{{calendly_link}}",
        ),
    },
    CATEGORY_CM_INVITATION: {
        "subject": "You're invited to join the Startup Awards as a Community Manager",
        "body": _wrap(
            "Community Manager Invitation",
            "<p>Dear <strong>{{cm_name}}</strong>,</p>"
            "<p>You have been invited to help run the evaluation programme as a community manager "
            "for {{organization}}.</p>"
            "<p>This invitation expires on <strong>{{invitation_expires_at}}</strong>.</p>",
            "Accept Invitation",
            "{{invitation_link}}",
        ),
    },
    CATEGORY_PASSWORD_RESET: {
        "subject": "Reset your password",
        "body": _wrap(
            "Password Reset",
            "<p>Hello {{user_name}},</p>"
            "<p>We received a request to reset the password for {{user_email}}. "
            "The link below is valid for {{expiration_time}}.</p>"
            "<p>If you did not ask for this, you can ignore this email.</p>",
            "Choose a New Password",
            "{{reset_link}}",
        ),
    },
    CATEGORY_JUROR_PHASE_TRANSITION: {
        "subject": "{{from_round}} complete - {{to_round}} assignments coming soon",
        "body": _wrap(
            "Round Complete",
            "<p>Dear <strong>{{juror_name}}</strong>,</p>"
            "<p>The {{from_round}} round is closed. Thank you for your {{evaluation_count}} evaluation(s).</p>"
            "<p>We'll email you as soon as your {{to_round}} assignments are ready.</p>",
            "Open Dashboard",
            "{{login_link}}",
        ),
    },
    CATEGORY_JUROR_LOGIN_REMINDER: {
        "subject": "Complete Your Registration",
        "body": _wrap(
            "Your Invitation Is Waiting",
            "<p>Dear <strong>{{juror_name}}</strong>,</p>"
            "<p>You were invited to the jury {{days_since_invitation}} days ago but haven't signed up yet. "
            "Your invitation link is valid until <strong>{{expiry_date}}</strong>.</p>",
            "Complete Registration",
            "{{magic_link}}",
        ),
    },
}

GENERIC_CONTENT = {
    "subject": "Startup Awards notification",
    "body": _wrap("Notification", "<p>Hello {{participant_name}},</p><p>{{message}}</p>"),
}


def default_content_for(category: str | None) -> dict[str, str]:
    return DEFAULT_CONTENT.get(category or "", GENERIC_CONTENT)
