from bs4 import BeautifulSoup

from actionkit.dsl.results import ElementInfo
from pagerunner.content_stabilizer import stabilize

PAGE = """
<html>
  <head><title>Demo</title><script>var a = 1;</script></head>
  <body>
    <!-- navigation -->
    <div class="card" onclick="go()" style="color: red" jsname="x1" data-ved="abc">
      <script>alert('x')</script>
      <style>.card { color: blue; }</style>
      <button id="go" jsaction="click:foo">Go</button>
      <span></span>
      <img src="/logo.png">
      <svg><circle r="4"></circle></svg>
    </div>
    <div hidden><button id="secret">Hidden</button></div>
    <p style="display: none">Invisible</p>
    <form action="/search" method="get">
      <input type="text" name="q" placeholder="Search here" aria-label="Search">
      <label for="q" title="Query">Query</label>
    </form>
    <p>Some    spaced
       text</p>
  </body>
</html>
"""

ELEMENTS = [
    ElementInfo(selector="#go", type="clickable", tag="button", id="go", text="Go"),
    ElementInfo(selector="label[for=\"q\"]", type="clickable", tag="label", text="Query"),
    ElementInfo(selector="input[name=\"q\"]", type="writeable", tag="input"),
]


def test_noise_and_hidden_content_are_removed():
    output = stabilize(PAGE, ELEMENTS)
    for fragment in ("<script", "<style", "<head", "<img", "<svg", "<!--", "Hidden", "Invisible", "Demo"):
        assert fragment not in output
    soup = BeautifulSoup(output, "html.parser")
    assert soup.find("span") is None


def test_only_technical_attributes_survive():
    output = stabilize(PAGE, ELEMENTS)
    for attribute in ("onclick", "style", "jsname", "data-ved", "jsaction", "placeholder", "aria-label", "title="):
        assert attribute not in output
    soup = BeautifulSoup(output, "html.parser")
    form = soup.find("form")
    assert form["action"] == "/search"
    assert form["method"] == "get"
    field = soup.find("input")
    assert field["name"] == "q"
    assert field["type"] == "text"
    assert soup.find("div")["class"] == ["card"]


def test_whitespace_is_collapsed():
    output = stabilize(PAGE, ELEMENTS)
    assert "Some spaced text" in output
    assert "\n" not in output
    assert "><" in output


def test_elements_are_annotated_with_stable_selectors():
    soup = BeautifulSoup(stabilize(PAGE, ELEMENTS), "html.parser")
    assert soup.find("button")["data-stable-selector"] == "#go"
    assert soup.find("label")["data-stable-selector"] == "label[for=\"q\"]"
    assert soup.find("input").get("data-stable-selector") is None


def test_existing_marker_is_not_duplicated():
    html = '<button id="go" data-stable-selector="#go">Go</button>'
    output = stabilize(html, [ElementInfo(selector="button#go", type="clickable", tag="button", text="Go")])
    assert output.count("data-stable-selector") == 1
    assert 'data-stable-selector="#go"' in output


def test_long_text_is_truncated():
    plain = "lorem ipsum " * 30
    keyword = "Please click here to continue " + "x" * 250
    output = stabilize(f"<p>{plain}</p><p>{keyword}</p>")
    soup = BeautifulSoup(output, "html.parser")
    paragraphs = soup.find_all("p")
    assert paragraphs[0].find("text-content-truncated") is not None
    assert "lorem" not in output
    assert paragraphs[1].get_text() == keyword[:100] + "..."


def test_empty_form_controls_and_anchors_survive():
    html = '<div><input type="checkbox" name="agree"><a href="/next"></a><div role="button"></div><i></i></div>'
    soup = BeautifulSoup(stabilize(html), "html.parser")
    assert soup.find("input") is not None
    assert soup.find("a")["href"] == "/next"
    assert soup.find("div", attrs={"role": "button"}) is not None
    assert soup.find("i") is None


def test_stabilize_is_idempotent():
    first = stabilize(PAGE, ELEMENTS)
    second = stabilize(first, ELEMENTS)
    assert second == first

    noisy = "<p>" + "lorem ipsum " * 30 + "</p><p>click " + "y" * 300 + "</p>"
    once = stabilize(noisy)
    assert stabilize(once) == once


def test_empty_input_returns_empty_string():
    assert stabilize("") == ""
    assert stabilize(None) == ""
