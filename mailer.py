"""
Transactional email for WishFlow.

Messages are sent through the Resend HTTP API. Templates are stored per shop in
EmailSetting; the built-in defaults are Japanese and are swapped for a
translation when the shop runs in another language and has not customised the
text.
"""

import logging
from datetime import datetime

import requests

import config

logger = logging.getLogger(__name__)

PRODUCT_NAME_PLACEHOLDER = "{{product_name}}"

CONFIRMATION_DEFAULT_SUBJECT = "【再入荷通知登録完了】"
CONFIRMATION_DEFAULT_BODY = (
    "商品「{{product_name}}」の入荷通知設定を承りました。入荷次第、本メールアドレスへご連絡いたします。"
)

CONFIRMATION_TRANSLATIONS = {
    "en": {
        "subject": "[Subscription Confirmed] Restock Alert",
        "body": 'We have received your request for "{{product_name}}". We will notify you once it arrives.',
    },
    "zh-TW": {
        "subject": "【到貨通知登記成功】",
        "body": "我們已收到您對「{{product_name}}」的到貨通知請求。商品到貨後，我們將立即通知您。",
    },
    "fr": {
        "subject": "[Confirmation] Alerte de réapprovisionnement",
        "body": 'Nous avons bien reçu votre demande pour "{{product_name}}". Nous vous préviendrons dès son arrivée.',
    },
    "de": {
        "subject": "[Bestätigung] Benachrichtigung bei Verfügbarkeit",
        "body": 'Wir haben Ihre Anfrage für "{{product_name}}" erhalten. Wir informieren Sie, sobald der Artikel verfügbar ist.',
    },
    "es": {
        "subject": "[Confirmación] Alerta de reposición",
        "body": 'Hemos recibido su solicitud para "{{product_name}}". Le avisaremos en cuanto esté disponible.',
    },
}

RESTOCK_DEFAULT_SUBJECT = "【再入荷】{{product_name}} が入荷しました！"
RESTOCK_DEFAULT_BODY = "<p>商品「<strong>{{product_name}}</strong>」が入荷しました。</p>"
RESTOCK_SUBJECT_MARKER = "【再入荷】"

RESTOCK_TRANSLATIONS = {
    "en": {
        "subject": "[Restock] {{product_name}} is back!",
        "body": '<p>"<strong>{{product_name}}</strong>" is back in stock.</p>',
    },
    "zh-TW": {
        "subject": "【到貨通知】{{product_name}} 已經補貨了！",
        "body": "<p>商品「<strong>{{product_name}}</strong>」已經重新上架。</p>",
    },
}

TEST_EMAIL_TEMPLATES = {
    "ja": {
        "subject": "【WishFlow】テストメール送信確認",
        "title": "テストメール送信完了",
        "message": "これはWishFlowアプリからのテストメールです。<br>このメールが受信できれば、通知設定は正常に動作しています。",
        "footer": "送信設定",
    },
    "en": {
        "subject": "[WishFlow] Test Email Confirmation",
        "title": "Test Email Sent",
        "message": "This is a test email from the WishFlow app.<br>If you received this, your notification settings are working correctly.",
        "footer": "Sender Settings",
    },
    "zh": {
        "subject": "【WishFlow】測試郵件確認",
        "title": "測試郵件發送完成",
        "message": "這是來自 WishFlow 應用程序的測試郵件。<br>如果您收到此郵件，說明通知設置工作正常。",
        "footer": "發送設置",
    },
    "fr": {
        "subject": "[WishFlow] Confirmation de l'e-mail de test",
        "title": "E-mail de test envoyé",
        "message": "Ceci est un e-mail de test de l'application WishFlow.<br>Si vous recevez ceci, vos paramètres de notification fonctionnent correctement.",
        "footer": "Paramètres d'envoi",
    },
    "de": {
        "subject": "[WishFlow] Test-E-Mail-Bestätigung",
        "title": "Test-E-Mail gesendet",
        "message": "Dies ist eine Test-E-Mail der WishFlow-App.<br>Wenn Sie dies erhalten, funktionieren Ihre Benachrichtigungseinstellungen korrekt.",
        "footer": "Absendereinstellungen",
    },
    "es": {
        "subject": "[WishFlow] Confirmación de correo de prueba",
        "title": "Correo de prueba enviado",
        "message": "Este es un correo de prueba de la aplicación WishFlow.<br>Si recibe esto, su configuración de notificaciones funciona correctamente.",
        "footer": "Configuración de envío",
    },
}


class MailerError(Exception):
    pass


def is_configured():
    return bool(config.RESEND_API_KEY)


def sender_header(sender_name):
    return f"{sender_name or config.DEFAULT_SENDER_NAME} <{config.MAIL_FROM_ADDRESS}>"


def send_email(to, subject, html, sender_name=None):
    """Send one message through Resend. Returns the Resend message id."""
    if not config.RESEND_API_KEY:
        raise MailerError("RESEND_API_KEY is not configured")
    if not to:
        raise MailerError("Missing recipient")

    headers = {
        "Authorization": f"Bearer {config.RESEND_API_KEY}",
        "Content-Type": "application/json",
    }
    payload = {
        "from": sender_header(sender_name),
        "to": [to],
        "subject": subject,
        "html": html,
    }

    try:
        resp = requests.post(config.RESEND_API_URL, headers=headers, json=payload, timeout=config.REQUEST_TIMEOUT)
    except requests.exceptions.RequestException as e:
        raise MailerError(f"Request failed: {e}") from e

    if resp.status_code not in (200, 201, 202):
        try:
            message = resp.json().get("message") or resp.text
        except ValueError:
            message = resp.text
        raise MailerError(f"HTTP {resp.status_code}: {message[:200]}")

    message_id = resp.json().get("id")
    logger.info("Email %s sent to %s", message_id, to)
    return message_id


def render_template_text(template, product_name):
    product_name = "" if product_name is None else str(product_name)
    return (template or "").replace(PRODUCT_NAME_PLACEHOLDER, product_name)


def build_confirmation_email(settings, product_handle):
    """Returns (sender_name, subject, html) for the 'request received' email."""
    sender_name = config.DEFAULT_SENDER_NAME
    subject = CONFIRMATION_DEFAULT_SUBJECT
    body = CONFIRMATION_DEFAULT_BODY

    if settings is not None:
        lang = settings.language or "ja"
        sender_name = settings.sender_name or sender_name
        subject = settings.subject or subject
        body = settings.body or body

        if lang != "ja" and subject == CONFIRMATION_DEFAULT_SUBJECT and lang in CONFIRMATION_TRANSLATIONS:
            subject = CONFIRMATION_TRANSLATIONS[lang]["subject"]
            body = CONFIRMATION_TRANSLATIONS[lang]["body"]

    return (
        sender_name,
        render_template_text(subject, product_handle),
        f"<p>{render_template_text(body, product_handle)}</p>",
    )


def build_restock_email(settings, title, shop, handle):
    """Returns (sender_name, subject, html) for the back-in-stock email."""
    lang = (settings.language if settings else None) or "ja"
    sender_name = (settings.sender_name if settings else None) or config.DEFAULT_SENDER_NAME
    restock_subject = settings.restock_subject if settings else None
    subject = restock_subject or RESTOCK_DEFAULT_SUBJECT
    body = (settings.restock_body if settings else None) or RESTOCK_DEFAULT_BODY

    if lang != "ja" and (not restock_subject or RESTOCK_SUBJECT_MARKER in restock_subject):
        translation = RESTOCK_TRANSLATIONS.get(lang)
        if translation:
            subject = translation["subject"]
            body = translation["body"]

    link_label = "商品ページへ" if lang == "ja" else "View Product"
    html = (
        f"{render_template_text(body, title)}"
        f'<p><a href="https://{shop}/products/{handle}">{link_label}</a></p>'
    )
    return sender_name, render_template_text(subject, title), html


def build_test_email(language, sender_name):
    """Returns (subject, html) for the settings page test message."""
    tmpl = TEST_EMAIL_TEMPLATES.get(language) or TEST_EMAIL_TEMPLATES["en"]
    sender = sender_name or config.DEFAULT_SENDER_NAME
    html = f"""
    <div style="font-family: sans-serif; padding: 20px; border: 1px solid #e0e0e0; border-radius: 8px;">
      <h2>{tmpl["title"]}</h2>
      <p>{tmpl["message"]}</p>
      <hr>
      <p style="font-size: 12px; color: #888;">{tmpl["footer"]}: {sender} &lt;{config.MAIL_FROM_ADDRESS}&gt;</p>
      <p style="font-size: 12px; color: #888;">Time: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}</p>
    </div>
    """
    return tmpl["subject"], html
