"""Browser-facing return page (Jinja2, in-memory template)."""

from jinja2 import DictLoader, Environment, select_autoescape

TEMPLATES = {
    "return.html": r"""<!doctype html>
<html>
  <head><meta charset="utf-8"><title>Payment result</title></head>
  <body style="font-family:system-ui;margin:2rem">
    <p>{{ message }}</p>
    <noscript><a href="{{ back_url }}">Continue</a></noscript>
    <script>
      (function () {
        try {
          localStorage.setItem({{ storage_key|tojson }}, JSON.stringify({{ result|tojson }}));
        } catch (e) {}
        window.location.replace({{ back_url|tojson }});
      })();
    </script>
  </body>
</html>
""",
}

env = Environment(loader=DictLoader(TEMPLATES), autoescape=select_autoescape(["html"]))


def render_return_page(message: str, result: dict, back_url: str, storage_key: str) -> str:
    return env.get_template("return.html").render(
        message=message,
        result=result,
        back_url=back_url,
        storage_key=storage_key,
    )
