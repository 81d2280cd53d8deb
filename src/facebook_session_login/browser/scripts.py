"""
In-page JavaScript used by the interaction primitives and the auth-state detector.

Every snippet is a single-argument function expression so it can go through Playwright's
`page.evaluate(expr, arg)` / `page.wait_for_function(expr, arg=...)` unchanged.
"""

# arg: {text, exact, scan, actionable, disabled}
# Returns the nearest actionable element whose normalized text matches, or null.
FIND_CLICKABLE_BY_TEXT = """
(a) => {
  const norm = (s) => (s || "").replace(/\\s+/g, " ").trim().toLowerCase();
  const want = norm(a.text);
  for (const el of document.querySelectorAll(a.scan)) {
    const txt = norm(el.innerText);
    if (!txt) continue;
    const hit = a.exact ? txt === want : txt.includes(want);
    if (!hit) continue;
    if (el.closest(a.disabled)) continue;
    const tag = el.tagName;
    const btn = (tag === "BUTTON" || tag === "A" || el.getAttribute("role") === "button")
      ? el
      : el.closest(a.actionable);
    if (btn) return btn;
  }
  return null;
}
"""

# arg: {wants: [lowercase substrings]}
FIND_RADIO_BY_LABEL = """
(a) => {
  const norm = (s) => (s || "").replace(/\\s+/g, " ").trim().toLowerCase();
  for (const el of document.querySelectorAll('[role="radio"]')) {
    const label = norm(el.getAttribute("aria-label"));
    if (a.wants.every((w) => label.includes(w))) return el;
  }
  return null;
}
"""

# arg: {wants: [lowercase substrings]}
RADIO_CHECKED_WITH_LABEL = """
(a) => {
  const norm = (s) => (s || "").replace(/\\s+/g, " ").trim().toLowerCase();
  const el = document.querySelector('[role="radio"][aria-checked="true"]');
  if (!el) return false;
  const label = norm(el.getAttribute("aria-label"));
  return a.wants.every((w) => label.includes(w));
}
"""

# arg: {selector, value}
# Direct property assignment plus synthetic input/change events.
SET_FIELD_VALUE = """
(a) => {
  const el = document.querySelector(a.selector);
  if (!el) return false;
  el.focus();
  el.value = "";
  el.dispatchEvent(new Event("input", { bubbles: true }));
  el.value = a.value;
  el.dispatchEvent(new Event("input", { bubbles: true }));
  el.dispatchEvent(new Event("change", { bubbles: true }));
  return true;
}
"""

# arg: {text, scan, actionable}
# One-shot scan (no polling): click the first exact normalized-text match.
CLICK_EXACT_TEXT_ONCE = """
(a) => {
  const norm = (s) => (s || "").replace(/\\s+/g, " ").trim().toLowerCase();
  const want = norm(a.text);
  for (const el of document.querySelectorAll(a.scan)) {
    if (norm(el.innerText) === want) {
      const btn = el.closest(a.actionable) || el;
      btn.click();
      return true;
    }
  }
  return false;
}
"""

# arg: {selector}
SELECTOR_PRESENT = """
(a) => !!document.querySelector(a.selector)
"""

# arg: {form, urlPattern, loginPath}
IS_LOGIN_LIKE = """
(a) => {
  const u = location.href;
  const hasLoginInput = !!document.querySelector(a.form);
  const checkpoint = new RegExp(a.urlPattern, "i").test(u);
  const loginInUrl = new RegExp(a.loginPath, "i").test(u);
  return hasLoginInput || checkpoint || loginInUrl;
}
"""

# arg: {selector}
CLICK_PROFILE_BUTTON = """
(a) => {
  const el = document.querySelector(a.selector);
  if (!el) return false;
  const target = el instanceof HTMLElement ? el : el.closest('[role="button"]');
  if (!target || !target.click) return false;
  target.click();
  return true;
}
"""

# arg: {pattern}
URL_MATCHES = """
(a) => new RegExp(a.pattern, "i").test(location.href)
"""

# arg: {selector}
# Returns the heading's accessible label or text, or null.
HEADING_TEXT = """
(a) => {
  const el = document.querySelector(a.selector);
  if (!el) return null;
  return el.getAttribute("aria-label") || (el.textContent || "").trim() || null;
}
"""

# arg: {heading, logout, settings, messages, friends}
UI_AFFORDANCES = """
(a) => {
  const heading = document.querySelector(a.heading);
  const headingText = heading
    ? (heading.getAttribute("aria-label") || (heading.textContent || "").trim() || null)
    : null;
  return {
    logout: !!document.querySelector(a.logout),
    settings: !!document.querySelector(a.settings),
    messages: !!document.querySelector(a.messages),
    friends: !!document.querySelector(a.friends),
    headingText: headingText,
  };
}
"""
