"""ClickNPS - one-click NPS links, response capture and delayed webhooks."""
