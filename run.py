from donation_pages import create_app
import os

app = create_app()

if __name__ == "__main__":
    port = int(os.getenv("PORT", 5173))
    app.run(
        host="127.0.0.1",
        port=port,
        debug=False,
        use_reloader=False,
        threaded=True,
    )

# Local dev:
# cp .env.example .env   # point API_BASE_URL at the backend, add STRIPE_PUBLISHABLE_KEY
# PORT=5173 python run.py
# Donation page:   http://127.0.0.1:5173/donate/<campaign_id>
# Embed widget:    http://127.0.0.1:5173/embed/<campaign_id>
