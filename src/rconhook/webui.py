"""The web UI page served at ``GET /``."""

from __future__ import annotations

SITE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>rconhook</title>
<style>
  body   { font-family: monospace; background: #111; color: #ddd; margin: 2em; }
  input  { background: #222; color: #ddd; border: 1px solid #444; padding: .4em; width: 24em; }
  button { background: #264; color: #fff; border: 0; padding: .45em 1em; cursor: pointer; }
  pre    { background: #1a1a1a; border: 1px solid #333; padding: 1em; min-height: 3em;
           white-space: pre-wrap; }
  .error { color: #f66; }
</style>
</head>
<body>
<h1>rconhook</h1>
<form id="hook">
  <input id="name" type="password" placeholder="webhook name" autocomplete="off" required>
  <button type="submit">Trigger</button>
</form>
<pre id="output"></pre>
<script>
  const form = document.getElementById("hook");
  const output = document.getElementById("output");
  form.addEventListener("submit", async (event) => {
    event.preventDefault();
    const name = document.getElementById("name").value;
    output.className = "";
    output.textContent = "...";
    try {
      const response = await fetch("/api/" + encodeURIComponent(name), { method: "POST" });
      if (response.ok) {
        output.textContent = (await response.text()) || "(empty reply)";
      } else {
        output.className = "error";
        output.textContent = response.status + " " + response.statusText;
      }
    } catch (err) {
      output.className = "error";
      output.textContent = String(err);
    }
  });
</script>
</body>
</html>
"""
