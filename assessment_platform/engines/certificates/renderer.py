"""
Certificate rendering: an A4 landscape HTML page converted to PDF.
"""

import uuid
from datetime import datetime
from html import escape

from pydantic import BaseModel

from assessment_platform.config import get_settings


class CertificateData(BaseModel):
    """Everything printed on a certificate."""

    certificate_id: uuid.UUID
    full_name: str
    level: str
    score: int
    step: int
    issued_at: datetime


CERTIFICATE_CSS = """
@page { size: A4 landscape; margin: 0; }
body { margin: 0; font-family: Georgia, 'Times New Roman', serif; color: #1a202c; }
.frame {
    margin: 1.2cm; padding: 1.4cm 2cm; height: 15.2cm;
    border: 6px double #2c5282; text-align: center; position: relative;
}
.brand { font-size: 14pt; letter-spacing: 3px; color: #2c5282; text-transform: uppercase; }
h1 { font-size: 34pt; margin: 0.6cm 0 0.2cm; letter-spacing: 4px; }
.subtitle { font-size: 13pt; color: #4a5568; }
.presented { margin-top: 0.9cm; font-size: 12pt; font-style: italic; }
.name { font-size: 28pt; margin: 0.3cm 0; border-bottom: 1px solid #a0aec0; display: inline-block; padding: 0 1cm; }
.detail { font-size: 12pt; margin-top: 0.4cm; }
.badge {
    display: inline-block; margin-top: 0.5cm; padding: 0.25cm 0.8cm;
    background: #2c5282; color: white; font-size: 22pt; border-radius: 8px;
}
.footer { position: absolute; bottom: 0.9cm; left: 2cm; right: 2cm; font-size: 9pt; color: #718096; }
.footer .left { float: left; text-align: left; }
.footer .right { float: right; text-align: right; }
.seal {
    position: absolute; right: 2.2cm; top: 1.4cm; width: 2.6cm; height: 2.6cm;
    border: 3px solid #38a169; border-radius: 50%; color: #38a169;
    font-size: 10pt; font-weight: bold; line-height: 2.6cm; letter-spacing: 2px;
}
"""


class CertificateRenderer:
    """Builds certificate HTML and converts it to PDF bytes with WeasyPrint."""

    def __init__(self, organization: str = None):
        self.organization = organization or get_settings().smtp_from_name

    def render_html(self, data: CertificateData) -> str:
        issued = data.issued_at.strftime("%B %d, %Y")
        return (
            "<!DOCTYPE html><html><head><meta charset='utf-8'>"
            f"<title>Certificate {data.certificate_id}</title>"
            f"<style>{CERTIFICATE_CSS}</style></head><body>"
            "<div class='frame'>"
            "<div class='seal'>VERIFIED</div>"
            f"<div class='brand'>{escape(self.organization)}</div>"
            "<h1>CERTIFICATE OF ACHIEVEMENT</h1>"
            "<div class='subtitle'>Digital Competency Assessment</div>"
            "<div class='presented'>This certifies that</div>"
            f"<div class='name'>{escape(data.full_name)}</div>"
            f"<div class='detail'>has completed Step {data.step} of the assessment "
            f"with a score of {data.score}% and achieved the level</div>"
            f"<div class='badge'>{escape(data.level)}</div>"
            "<div class='footer'>"
            f"<span class='left'>Issued {issued}</span>"
            f"<span class='right'>Certificate ID: {data.certificate_id}</span>"
            "</div></div></body></html>"
        )

    def render_pdf(self, data: CertificateData) -> bytes:
        # Imported here so the API can start on hosts without Pango/Cairo;
        # only certificate downloads and emails need them.
        from weasyprint import HTML

        return HTML(string=self.render_html(data)).write_pdf()
