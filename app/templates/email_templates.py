from datetime import date, datetime
from typing import Any

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

from app.utils.datetime_utils import parse_iso_datetime

_LAYOUT = """<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background-color: {{ header_background | default('#f8f9fa') }}; padding: 20px; text-align: center;">
    <h1 style="color: #333; margin: 0;">{{ brand_name }}</h1>
  </div>
  <div style="padding: 30px 20px;">
    {% block content %}{% endblock %}
  </div>
</div>"""

_NOTIFICATION = """{% extends "layout.html" %}
{% block content %}
    <h2 style="color: #333; margin-bottom: 20px;">{{ title }}</h2>
    <p style="color: #666; line-height: 1.6; font-size: 16px;">{{ message }}</p>
    {% if details_heading %}
    <div style="background-color: {{ details_background }}; padding: 20px; border-radius: 8px; margin: 20px 0;">
      <h3 style="color: {{ details_color }}; margin-top: 0;">{{ details_heading }}</h3>
      <p><strong>Entity:</strong> {{ entity_name }}</p>
      {% if due_date %}<p><strong>Due Date:</strong> {{ due_date | us_date }}</p>{% endif %}
      {% if amount %}<p><strong>Amount:</strong> {{ amount | money }}</p>{% endif %}
    </div>
    {% endif %}
    <div style="margin: 30px 0; text-align: center;">
      <a href="{{ dashboard_url }}"
         style="background-color: #1976d2; color: white; padding: 12px 24px; text-decoration: none; border-radius: 5px; display: inline-block;">
        View Dashboard
      </a>
    </div>
    <p style="color: #999; font-size: 14px; margin-top: 30px;">
      You're receiving this email because you have notifications enabled in your {{ brand_name }} account.
    </p>
{% endblock %}"""

_TRIAL_THREE_DAYS = """{% extends "layout.html" %}
{% block content %}
    <h2 style="color: #333; margin-bottom: 20px;">Your Free Trial Ends Soon</h2>
    <p style="color: #666; line-height: 1.6; font-size: 16px;">
      Hi there! We wanted to remind you that your {{ trial_length_days }}-day free trial will end in <strong>3 days</strong> on {{ trial_end | us_date }}.
    </p>
    <p style="color: #666; line-height: 1.6; font-size: 16px;">Don't lose access to all the great features you've been enjoying:</p>
    <ul style="color: #666; line-height: 1.8; font-size: 16px;">
      <li>Unlimited entity management</li>
      <li>Automated compliance tracking</li>
      <li>Renewal reminders</li>
      <li>Document storage</li>
    </ul>
    <div style="margin: 30px 0; text-align: center;">
      <a href="{{ billing_url }}"
         style="background-color: #1976d2; color: white; padding: 12px 24px; text-decoration: none; border-radius: 5px; display: inline-block;">
        Upgrade Now
      </a>
    </div>
    <p style="color: #999; font-size: 14px; margin-top: 30px;">Questions? We're here to help! Just reply to this email.</p>
{% endblock %}"""

_TRIAL_ONE_DAY = """{% extends "layout.html" %}
{% block content %}
    <h2 style="color: #f57c00; margin-bottom: 20px;">Your Trial Ends Tomorrow!</h2>
    <p style="color: #666; line-height: 1.6; font-size: 16px;">
      This is your final reminder - your {{ trial_length_days }}-day free trial will end <strong>tomorrow</strong> on {{ trial_end | us_date }}.
    </p>
    <p style="color: #666; line-height: 1.6; font-size: 16px;">After your trial ends, you won't be able to:</p>
    <ul style="color: #666; line-height: 1.8; font-size: 16px;">
      <li>Add new entities</li>
      <li>Access compliance tracking</li>
      <li>View your documents</li>
      <li>Receive renewal reminders</li>
    </ul>
    <p style="color: #666; line-height: 1.6; font-size: 16px; font-weight: bold;">Upgrade now to keep everything you've built!</p>
    <div style="margin: 30px 0; text-align: center;">
      <a href="{{ billing_url }}"
         style="background-color: #f57c00; color: white; padding: 14px 28px; text-decoration: none; border-radius: 5px; display: inline-block; font-weight: bold;">
        Upgrade Now - Don't Lose Access
      </a>
    </div>
    <p style="color: #999; font-size: 14px; margin-top: 30px;">Need help deciding? Reply to this email and we'll answer any questions!</p>
{% endblock %}"""

_SECURITY_ALERT = """{% extends "layout.html" %}
{% block content %}
    <h2 style="color: #c62828; margin-bottom: 20px;">Security alert level: {{ alert_level | upper }}</h2>
    <p style="color: #666; line-height: 1.6; font-size: 16px;">
      {{ total_events }} security events were recorded in the last {{ window_minutes }} minutes.
    </p>
    <ul style="color: #666; line-height: 1.8; font-size: 16px;">
      {% for name, count in patterns.items() %}<li>{{ name }}: {{ count }}</li>{% endfor %}
    </ul>
    {% if flagged_ips %}
    <p style="color: #666; font-size: 16px;"><strong>Flagged IP addresses:</strong></p>
    <ul style="color: #666; font-size: 16px;">
      {% for ip in flagged_ips %}<li>{{ ip.ip_address }} ({{ ip.violations }} violations)</li>{% endfor %}
    </ul>
    {% endif %}
    {% if recommendations %}
    <p style="color: #666; font-size: 16px;"><strong>Recommendations:</strong></p>
    <ul style="color: #666; font-size: 16px;">
      {% for item in recommendations %}<li>{{ item }}</li>{% endfor %}
    </ul>
    {% endif %}
{% endblock %}"""

NOTIFICATION_TEMPLATE = "notification.html"
TRIAL_THREE_DAYS_TEMPLATE = "trial_three_days.html"
TRIAL_ONE_DAY_TEMPLATE = "trial_one_day.html"
SECURITY_ALERT_TEMPLATE = "security_alert.html"


def format_us_date(value: Any) -> str:
    """Render a date, datetime or ISO string as MM/DD/YYYY; unparseable strings pass through."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, str):
        try:
            value = parse_iso_datetime(value).date()
        except ValueError:
            return value
    if isinstance(value, date):
        return f"{value.month}/{value.day}/{value.year}"
    return str(value)


def format_money(value: Any) -> str:
    """Render a number as $1,234.50; non-numeric values pass through."""
    try:
        return f"${float(value):,.2f}"
    except (TypeError, ValueError):
        return str(value)


email_environment = Environment(
    loader=DictLoader(
        {
            "layout.html": _LAYOUT,
            NOTIFICATION_TEMPLATE: _NOTIFICATION,
            TRIAL_THREE_DAYS_TEMPLATE: _TRIAL_THREE_DAYS,
            TRIAL_ONE_DAY_TEMPLATE: _TRIAL_ONE_DAY,
            SECURITY_ALERT_TEMPLATE: _SECURITY_ALERT,
        }
    ),
    autoescape=select_autoescape(default=True, default_for_string=True),
    undefined=StrictUndefined,
)
email_environment.filters["us_date"] = format_us_date
email_environment.filters["money"] = format_money


def render_email(template_name: str, **context: Any) -> str:
    """Render an email body; every interpolated value is HTML-escaped."""
    return email_environment.get_template(template_name).render(**context)
