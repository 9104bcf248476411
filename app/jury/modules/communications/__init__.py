"""
Communications: templates, Resend delivery, webhooks and reminders.
"""
