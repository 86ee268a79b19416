"""Theme definitions for the chat view.

Hides the color palette. To add a theme, define it here and register it
in the app.
"""

from textual.theme import Theme

# Warm dusk palette: rose for the character, teal for the user
DUSK = Theme(
    name="chatview-dusk",
    primary="#e0a3c8",      # Rose - feed and focus
    secondary="#b39ddb",    # Lavender - character messages
    accent="#ffd27f",       # Amber - active reactions
    foreground="#ece6f0",
    background="#16121c",
    success="#7fd1c7",      # Teal - user messages
    warning="#f5b971",
    error="#ef7a85",
    surface="#221c2b",
    panel="#1b1622",
    dark=True,
    variables={
        "border": "#3d3448",
        "border-blurred": "#2c2535",
        "scrollbar": "#2c2535",
        "scrollbar-hover": "#3d3448",
        "scrollbar-active": "#e0a3c8",
        "scrollbar-background": "#1b1622",
        "footer-key-foreground": "#ffd27f",
        "text-muted": "#8a7f96",
        "link-color": "#e0a3c8",
        "link-style": "underline",
    },
)
