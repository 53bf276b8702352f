"""
Full-page HTML around rendered blocks: donation page, payment step,
thank-you page, embed widget and the fatal states.
"""

from __future__ import annotations
import json
from html import escape
from urllib.parse import quote

from donation_pages.models.campaign import Donation, Progress
from donation_pages.rendering.blocks import money
from donation_pages.rendering.dispatcher import RenderedBlock


def _js(value) -> str:
    return json.dumps(value).replace("<", "\\u003c")


COPY_LINK_SCRIPT = """<script>
document.querySelectorAll("[data-copy]").forEach(function (btn) {
  btn.addEventListener("click", function () {
    navigator.clipboard.writeText(btn.dataset.copy).then(function () {
      btn.textContent = "Link copied";
    });
  });
});
</script>"""


def page_shell(title: str, body: str, *, head: str = "", css_class: str = "donate-page") -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(title)}</title>
  {head}
</head>
<body>
<div class="{css_class}">
{body}
</div>
</body>
</html>"""


def error_page(message: str, *, title: str = "Donate") -> str:
    return page_shell(title, f'<p class="donation-error">{escape(message)}</p>')


def not_configured_page() -> str:
    return error_page(
        "Payment is not configured. Add STRIPE_PUBLISHABLE_KEY to your environment."
    )


def amount_form(
    *,
    action: str,
    campaign_title: str,
    presets: list[float],
    selected: float | None = None,
    custom_amount: str = "",
    donor_email: str = "",
    message: str = "",
    error: str | None = None,
) -> str:
    buttons = "".join(
        '<label class="donation-preset">'
        f'<input type="radio" name="preset" value="{a}"{" checked" if selected == a else ""} />'
        f" ${money(a)}</label>"
        for a in presets
    )
    err = f'<p class="donation-error">{escape(error)}</p>' if error else ""
    return f"""<section id="donate" class="donation-modal">
  <h2 class="donation-modal-title">Donate to {escape(campaign_title)}</h2>
  <form method="post" action="{escape(action)}" class="donation-amount-form">
    <div class="donation-presets">{buttons}</div>
    <label>Custom amount <input type="text" inputmode="decimal" name="custom_amount" value="{escape(custom_amount)}" /></label>
    <label>Email (optional) <input type="email" name="donor_email" value="{escape(donor_email)}" /></label>
    <label>Message (optional) <textarea name="message">{escape(message)}</textarea></label>
    {err}
    <button type="submit" class="donation-submit-btn">Continue</button>
  </form>
</section>"""


def donate_page(
    campaign_title: str, nodes: list[RenderedBlock], form_html: str
) -> str:
    body = "\n".join(n.html for n in nodes) + "\n" + form_html
    return page_shell(campaign_title, body, css_class="donate-page donate-page-blocks")


def payment_page(
    *,
    campaign_title: str,
    publishable_key: str,
    client_secret: str,
    amount: float,
    return_url: str,
    change_amount_action: str,
    donor_email: str = "",
    message: str = "",
) -> str:
    body = f"""<section id="donate" class="donation-modal">
  <h2 class="donation-modal-title">Complete your donation</h2>
  <div class="donation-summary"><p>Amount: ${amount:,.2f}</p></div>
  <div id="payment-element"></div>
  <p class="donation-error" id="payment-error"></p>
  <button type="button" id="pay" class="donation-submit-btn">Pay ${amount:,.2f}</button>
  <form method="post" action="{escape(change_amount_action)}">
    <input type="hidden" name="custom_amount" value="{amount}" />
    <input type="hidden" name="donor_email" value="{escape(donor_email)}" />
    <input type="hidden" name="message" value="{escape(message)}" />
    <input type="hidden" name="change_amount" value="1" />
    <button type="submit" class="donation-back-btn">Change amount</button>
  </form>
</section>
<script src="https://js.stripe.com/v3/"></script>
<script>
  const stripe = Stripe({_js(publishable_key)});
  const elements = stripe.elements({{ clientSecret: {_js(client_secret)}, appearance: {{ theme: "stripe" }} }});
  elements.create("payment").mount("#payment-element");
  document.getElementById("pay").addEventListener("click", async () => {{
    const {{ error }} = await stripe.confirmPayment({{ elements, confirmParams: {{ return_url: {_js(return_url)} }} }});
    if (error) document.getElementById("payment-error").textContent = error.message || "Payment failed";
  }});
</script>"""
    return page_shell(campaign_title, body)


def thank_you_page(
    *,
    outcome: str,
    donation: Donation | None,
    error: str | None,
    campaign_title: str = "",
    campaign_url: str | None = None,
) -> str:
    def back(label: str) -> str:
        if not campaign_url:
            return ""
        return f'<a href="{escape(campaign_url)}" class="thank-you-link">{label}</a>'

    if outcome == "pending":
        return page_shell(
            "Thank you!",
            "<h1>Thank you!</h1><p>Confirming your donation…</p>",
            head='<meta http-equiv="refresh" content="2">',
            css_class="thank-you-page",
        )
    if outcome == "timeout":
        return page_shell(
            "Thank you!",
            "<h1>Thank you!</h1>"
            "<p>We are still confirming your donation. Check back in a few minutes.</p>"
            + back("Back to campaign"),
            css_class="thank-you-page",
        )
    if outcome != "succeeded":
        return page_shell(
            "Something went wrong",
            "<h1>Something went wrong</h1>"
            f'<p class="donation-error">{escape(error or "Your payment could not be completed.")}</p>'
            + back("Try again"),
            css_class="thank-you-page",
        )

    amount = f"{donation.amount:,.2f}" if donation else "-"
    currency = (donation.currency if donation else "usd").upper()
    to = f" to {escape(campaign_title)}" if campaign_title else ""
    share_url = campaign_url or ""
    share_text = (
        f"I just donated to {campaign_title}!" if campaign_title else "I just made a donation!"
    )
    parts = [
        "<h1>Thank you for your donation!</h1>",
        f'<p class="thank-you-amount">You donated {currency} ${amount}{to}.</p>',
    ]
    if donation and donation.message:
        parts.append(f'<p class="thank-you-message">"{escape(donation.message)}"</p>')
    parts.append(
        '<div class="share-section"><h2>Share your support</h2><div class="share-buttons">'
        f'<a class="share-btn" target="_blank" rel="noopener noreferrer" '
        f'href="https://twitter.com/intent/tweet?text={quote(share_text)}&amp;url={quote(share_url)}">Share on X</a>'
        f'<a class="share-btn" target="_blank" rel="noopener noreferrer" '
        f'href="https://www.facebook.com/sharer/sharer.php?u={quote(share_url)}">Share on Facebook</a>'
        f'<button type="button" class="share-btn" data-copy="{escape(share_url)}">Copy link</button>'
        "</div></div>"
    )
    parts.append(back("Back to campaign"))
    parts.append(COPY_LINK_SCRIPT)
    return page_shell("Thank you!", "".join(parts), css_class="thank-you-page")


def embed_page(
    *, title: str | None, progress: Progress | None, donate_url: str, error: str | None = None
) -> str:
    if progress is None:
        body = f'<p class="embed-error">{escape(error or "Campaign not found.")}</p>'
        return page_shell("Campaign progress", body, css_class="embed-progress")
    parts = []
    if title:
        parts.append(f'<p class="embed-title">{escape(title)}</p>')
    parts.append(
        f'<p class="embed-raised">${money(progress.total_raised)} of ${money(progress.goal)} goal</p>'
    )
    percent = max(0.0, min(100.0, progress.percent))
    parts.append(
        f'<div class="progress-bar"><div class="progress-fill" style="width: {percent:.2f}%"></div></div>'
    )
    parts.append(
        f'<a class="embed-donate" href="{escape(donate_url)}" target="_blank" rel="noopener noreferrer">Donate</a>'
    )
    return page_shell(title or "Campaign progress", "".join(parts), css_class="embed-progress campaign-progress")
