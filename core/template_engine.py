# core/template_engine.py
"""
Blog Notification Template Engine
Renders a blog post into a self-contained HTML email with inlined styles,
plus a plain-text alternative for clients that do not display HTML.

Escaping policy: title, excerpt, cover image URL and slug are escaped by
Jinja2 autoescape. The content fragment is treated as pre-sanitized HTML and
inserted verbatim; callers that accept content from untrusted sources run it
through sanitize_content() first.
"""

import re
import logging
import urllib.parse
from datetime import datetime, timezone
from typing import Optional

from jinja2 import Environment, StrictUndefined
from jinja2.exceptions import TemplateError
from markupsafe import Markup
import bleach
from bleach.css_sanitizer import CSSSanitizer
from bs4 import BeautifulSoup

from core.models import BlogPost, EmailMessage

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "📚 New Blog: "

BLOG_EMAIL_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{{ title }}</title>
</head>
<body style="margin: 0; padding: 0; background-color: #f4f4f5; font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;">
  <table role="presentation" style="width: 100%; border-collapse: collapse;">
    <tr>
      <td style="padding: 40px 20px;">
        <table role="presentation" style="max-width: 600px; margin: 0 auto; background-color: #ffffff; border-radius: 12px; overflow: hidden; box-shadow: 0 4px 6px rgba(0, 0, 0, 0.1);">
          <tr>
            <td style="background: linear-gradient(135deg, #3b82f6 0%, #8b5cf6 100%); padding: 30px 40px; text-align: center;">
              <h1 style="margin: 0; color: #ffffff; font-size: 24px; font-weight: 600;">{{ brand_name }} Blog</h1>
            </td>
          </tr>
{% if cover_image %}
          <tr>
            <td style="padding: 0;">
              <img src="{{ cover_image }}" alt="{{ title }}" style="width: 100%; height: auto; display: block;">
            </td>
          </tr>
{% endif %}
          <tr>
            <td style="padding: 40px;">
              <h2 style="margin: 0 0 16px 0; color: #1f2937; font-size: 28px; font-weight: 700; line-height: 1.3;">{{ title }}</h2>
{% if excerpt %}
              <p style="margin: 0 0 24px 0; color: #6b7280; font-size: 16px; line-height: 1.6; font-style: italic;">{{ excerpt }}</p>
{% endif %}
              <div style="color: #374151; font-size: 16px; line-height: 1.8;">
{{ content }}
              </div>
              <table role="presentation" style="margin: 32px 0;">
                <tr>
                  <td style="background: linear-gradient(135deg, #3b82f6 0%, #8b5cf6 100%); border-radius: 8px;">
                    <a href="{{ article_url }}" style="display: inline-block; padding: 14px 32px; color: #ffffff; text-decoration: none; font-weight: 600; font-size: 16px;">Read Full Article &rarr;</a>
                  </td>
                </tr>
              </table>
            </td>
          </tr>
          <tr>
            <td style="background-color: #f9fafb; padding: 24px 40px; text-align: center; border-top: 1px solid #e5e7eb;">
              <p style="margin: 0 0 8px 0; color: #6b7280; font-size: 14px;">You're receiving this because you're a member of {{ brand_name }}.</p>
              <p style="margin: 0; color: #9ca3af; font-size: 12px;">&copy; {{ year }} {{ brand_name }}. All rights reserved.</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""

# Email-safe HTML allowed in blog content fragments
EMAIL_SAFE_TAGS = {
    'p', 'br', 'strong', 'em', 'b', 'i', 'u', 's', 'sub', 'sup',
    'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'ul', 'ol', 'li', 'dl', 'dt', 'dd',
    'a', 'img', 'figure', 'figcaption',
    'table', 'thead', 'tbody', 'tfoot', 'tr', 'td', 'th', 'caption',
    'div', 'span', 'section', 'article', 'header', 'footer',
    'hr', 'blockquote', 'pre', 'code',
}

EMAIL_SAFE_ATTRIBUTES = {
    '*': ['class', 'style', 'title', 'dir', 'lang'],
    'a': ['href', 'title', 'rel', 'target'],
    'img': ['src', 'alt', 'width', 'height', 'border', 'align', 'title'],
    'table': ['border', 'cellpadding', 'cellspacing', 'width', 'align'],
    'td': ['colspan', 'rowspan', 'width', 'height', 'align', 'valign'],
    'th': ['colspan', 'rowspan', 'width', 'height', 'align', 'valign'],
}

EMAIL_SAFE_CSS = [
    'color', 'background-color', 'background',
    'font-family', 'font-size', 'font-weight', 'font-style',
    'text-align', 'text-decoration', 'text-transform',
    'margin', 'margin-top', 'margin-bottom', 'margin-left', 'margin-right',
    'padding', 'padding-top', 'padding-bottom', 'padding-left', 'padding-right',
    'border', 'border-color', 'border-style', 'border-width', 'border-radius',
    'width', 'height', 'max-width', 'min-width',
    'display', 'line-height', 'vertical-align',
]

_content_cleaner = bleach.Cleaner(
    tags=EMAIL_SAFE_TAGS,
    attributes=EMAIL_SAFE_ATTRIBUTES,
    protocols={'http', 'https', 'mailto'},
    css_sanitizer=CSSSanitizer(allowed_css_properties=EMAIL_SAFE_CSS),
    strip=True,
    strip_comments=True,
)


def sanitize_content(html_fragment: str) -> str:
    """Strip scripts, event handlers and non email-safe markup from a content fragment"""
    return _content_cleaner.clean(html_fragment)


def html_to_text(html_content: str) -> str:
    """
    Convert HTML to plain text with proper formatting for email
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, 'html.parser')

    for element in soup(['head', 'style', 'script']):
        element.decompose()

    for br in soup.find_all('br'):
        br.replace_with('\n')

    for p in soup.find_all('p'):
        p.insert_after('\n\n')

    for header in soup.find_all(['h1', 'h2', 'h3', 'h4', 'h5', 'h6']):
        header.insert_before('\n')
        header.insert_after('\n')

    for li in soup.find_all('li'):
        li.insert_before('• ')
        li.insert_after('\n')

    for link in soup.find_all('a', href=True):
        link_text = link.get_text().strip()
        href = link['href']
        if href != link_text:
            link.replace_with(f"{link_text} ({href})")

    text = soup.get_text()
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n[ \t]+', '\n', text)
    text = re.sub(r'\n\s*\n', '\n\n', text)
    return text.strip()


class BlogEmailRenderer:
    """
    Renders BlogPost records into notification emails
    """

    def __init__(self, site_url: str = 'https://codesapiens.in', brand_name: str = 'CodeSapiens'):
        self.site_url = site_url.rstrip('/')
        self.brand_name = brand_name

        self.env = Environment(
            autoescape=True,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.template = self.env.from_string(BLOG_EMAIL_TEMPLATE)

    def article_url(self, slug: Optional[str]) -> str:
        return f"{self.site_url}/blog/{urllib.parse.quote(slug or '', safe='')}"

    def render(self, post: BlogPost, now: Optional[datetime] = None) -> str:
        """
        Render the notification document for a blog post

        Args:
            post: blog post to announce
            now: render time, used for the footer year (defaults to current UTC time)

        Returns:
            Complete HTML5 document
        """
        now = now or datetime.now(timezone.utc)
        try:
            return self.template.render(
                title=post.title,
                excerpt=post.excerpt,
                cover_image=post.cover_image,
                content=Markup(post.content),
                article_url=self.article_url(post.slug),
                brand_name=self.brand_name,
                year=now.year,
            )
        except TemplateError as e:
            logger.error(f"Blog email rendering failed for '{post.title}': {e}")
            raise

    def build_message(self, post: BlogPost, recipient: str,
                      now: Optional[datetime] = None) -> EmailMessage:
        html_body = self.render(post, now=now)
        return EmailMessage(
            recipient=recipient,
            subject=f"{SUBJECT_PREFIX}{post.title}",
            html_body=html_body,
            text_body=html_to_text(html_body),
        )
