from html import escape

from app.db.models.database import Certificates

# màu chủ đạo theo mẫu chứng chỉ: (nền, viền, chữ nhấn)
TEMPLATE_COLORS = {
    "modern": ("#0b1220", "#0ea5e9", "#93c5fd"),
    "classic": ("#fdf6e3", "#8b5a2b", "#5c3d1e"),
    "elegant": ("#1c1917", "#d4af37", "#f5e6b8"),
    "professional": ("#ffffff", "#1e3a8a", "#1e40af"),
}


def render_certificate_html(cert: Certificates) -> str:
    """HTML của chứng chỉ, dựng từ dữ liệu snapshot lúc cấp."""
    background, border, accent = TEMPLATE_COLORS.get(cert.template, TEMPLATE_COLORS["modern"])
    text_color = "#f8fafc" if cert.template in ("modern", "elegant") else "#111827"

    logo = (
        f'<img class="logo" src="{escape(cert.logo_url)}" alt="logo"/>'
        if cert.logo_url
        else ""
    )
    signature = (
        f'<img class="signature" src="{escape(cert.signature_url)}" alt="signature"/>'
        if cert.signature_url
        else ""
    )
    skills = ", ".join(escape(s) for s in cert.skills or [])

    return f'''<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <title>Certificate {escape(cert.certificate_id)}</title>
  <style>
    body {{ margin: 0; background: {background}; color: {text_color}; font-family: Inter, sans-serif; }}
    .frame {{ margin: 40px; padding: 60px; border: 6px solid {border}; border-radius: 24px; text-align: center; }}
    .accent {{ color: {accent}; }}
    .name {{ font-size: 56px; font-weight: 700; margin: 24px 0; }}
    .logo {{ max-height: 80px; }}
    .signature {{ max-height: 60px; }}
  </style>
</head>
<body>
  <div class="frame">
    {logo}
    <h1>Certificate of Completion</h1>
    <p class="accent">This certifies that</p>
    <div class="name">{escape(cert.student_name)}</div>
    <p>has successfully completed</p>
    <h2>{escape(cert.course_title)}</h2>
    <p class="accent">Grade: {escape(cert.grade)} &middot; Completed on {cert.completed_at:%Y-%m-%d}</p>
    <p>{skills}</p>
    <div>
      {signature}
      <p>{escape(cert.signed_by_name or "")}</p>
      <p class="accent">{escape(cert.signed_by_title or "")}</p>
    </div>
    <p>{escape(cert.organization_name)}</p>
    <small>Certificate ID: {escape(cert.certificate_id)} &middot; Issued {cert.issued_at:%Y-%m-%d}</small>
  </div>
</body>
</html>'''
