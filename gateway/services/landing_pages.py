"""Landing pages served instead of proxying the root page."""

from typing import Literal

LandingPageKind = Literal["search", "nginx"]

NGINX_WELCOME_PAGE = """<!DOCTYPE html>
<html>
<head>
<title>Welcome to nginx!</title>
<style>
  body {
    width: 35em;
    margin: 0 auto;
    font-family: Tahoma, Verdana, Arial, sans-serif;
  }
</style>
</head>
<body>
<h1>Welcome to nginx!</h1>
<p>If you see this page, the nginx web server is successfully installed and
working. Further configuration is required.</p>

<p>For online documentation and support please refer to
<a href="http://nginx.org/">nginx.org</a>.<br/>
Commercial support is available at
<a href="http://nginx.com/">nginx.com</a>.</p>

<p><em>Thank you for using nginx.</em></p>
</body>
</html>
"""

SEARCH_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>Docker Hub Image Search</title>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <style>
    body {
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Arial, sans-serif;
      display: flex;
      flex-direction: column;
      justify-content: center;
      align-items: center;
      min-height: 100vh;
      margin: 0;
      padding: 20px;
      box-sizing: border-box;
      color: #ffffff;
      background: linear-gradient(135deg, #1a90ff 0%, #003eb3 100%);
    }
    .title { font-size: 2.3em; margin-bottom: 10px; }
    .subtitle { margin-bottom: 25px; opacity: 0.9; }
    .search-container {
      display: flex;
      width: 100%;
      max-width: 600px;
      height: 55px;
      border-radius: 12px;
      overflow: hidden;
      box-shadow: 0 10px 25px rgba(0, 0, 0, 0.15);
    }
    #search-input { flex: 1; padding: 0 20px; font-size: 16px; border: none; outline: none; }
    #search-button { width: 60px; border: none; cursor: pointer; color: #ffffff; background: #0066ff; }
    #search-button:hover { background: #0052cc; }
  </style>
</head>
<body>
  <h1 class="title">Docker Hub Image Search</h1>
  <p class="subtitle">Find, pull and deploy container images</p>
  <div class="search-container">
    <input type="text" id="search-input" placeholder="Search images, e.g. nginx, mysql, redis...">
    <button id="search-button" title="Search">&#10140;</button>
  </div>
  <script>
    function performSearch() {
      const query = document.getElementById('search-input').value.trim();
      if (query) {
        window.location.href = '/search?q=' + encodeURIComponent(query);
      }
    }

    document.getElementById('search-button').addEventListener('click', performSearch);
    document.getElementById('search-input').addEventListener('keypress', function(event) {
      if (event.key === 'Enter') {
        performSearch();
      }
    });
    window.addEventListener('load', function() {
      document.getElementById('search-input').focus();
    });
  </script>
</body>
</html>
"""

_PAGES: dict[str, str] = {
    "search": SEARCH_PAGE,
    "nginx": NGINX_WELCOME_PAGE,
}


def render_landing_page(kind: LandingPageKind) -> str:
    try:
        return _PAGES[kind]
    except KeyError:
        raise ValueError(f"Unknown landing page: {kind}") from None
