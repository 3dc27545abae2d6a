"""HTML fragments rendered inside the partner's page."""

from html import escape

from panel_bridge.entities.core.account import Account
from panel_bridge.entities.core.user import User

PANEL_STYLESHEET = "https://media.tribehr.com/partners/panels/tribehr_panel_styles.css"


def _text(value: object) -> str:
    return escape("" if value is None else str(value))


def render_error(message: str) -> str:
    """Stark error box; ``message`` is trusted markup."""
    return (
        '<div style="border:1px solid brown; padding:20px; overflow:hidden;">\n'
        f"  <p>{message}</p>\n"
        "</div>\n"
    )


def render_panel(account: Account, subject: User, requester: User) -> str:
    """Greeting for the requester plus both users' coordinates."""
    return f"""<html>
<head>
  <link rel="stylesheet" href="{PANEL_STYLESHEET}">
</head>
<body>
  <h3 class="plaintext">Hello {_text(requester.first_name)} {_text(requester.last_name)} from {_text(account.account_name)}</h3>
  <table class="data">
    <tr><th>Your Co-ordinates</th><th>{_text(subject.first_name)}'s Co-ordinates</th></tr>
    <tr>
      <td>{_text(requester.lat)}, {_text(requester.lng)}</td>
      <td>{_text(subject.lat)}, {_text(subject.lng)}</td>
    </tr>
  </table>
</body>
</html>
"""
