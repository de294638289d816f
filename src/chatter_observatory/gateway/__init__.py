"""Browser-facing gateway: Twitch login, capture controls, analysis pages and exports."""
