"""Point extractors for the supported build data file formats."""
from typing import Callable, Dict, List, Optional
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path
import csv
import logging

from lxml import etree

from buildplot.config import CsvSeriesConfig, PropertiesSeriesConfig, XmlSeriesConfig
from buildplot.exclusion import ExclusionFilter
from buildplot.metrics import IngestMetrics
from buildplot.points import DataPoint, expand_url
from buildplot.workspace import Workspace

logger = logging.getLogger(__name__)

Console = Callable[[str], None]

# Errors that mean "this series contributed no points", never fatal to a build
LOAD_ERRORS = (OSError, ValueError, csv.Error, etree.LxmlError)


def scan_double(text: Optional[str]) -> Optional[float]:
    """
    Parse the first whitespace delimited token of text as a number.

    Thousands separators are removed before parsing. Returns None when the
    token is not numeric.
    """
    if text is None:
        return None
    tokens = text.split()
    if not tokens:
        return None
    token = tokens[0].replace(",", "")
    if "_" in token:
        return None
    try:
        return float(token)
    except ValueError:
        return None


def format_double(value: float) -> str:
    """Render a parsed number compactly, 5.0 as "5" and 0.521 as "0.521"."""
    text = repr(float(value))
    if text.endswith(".0"):
        text = text[:-2]
    return text


class PointExtractor(ABC):
    """Base class for series point extractors."""

    file_type = ""

    def __init__(self, config, metrics: Optional[IngestMetrics] = None):
        self.config = config
        self.metrics = metrics

    def extract(
        self,
        workspace: Workspace,
        build_number: int,
        console: Optional[Console] = None
    ) -> List[DataPoint]:
        """
        Locate the series file in the workspace and parse it into points.

        Failures are logged and produce an empty list; they never propagate
        to the caller.
        """
        console = console or logger.info

        try:
            files = workspace.list_files(self.config.file)
        except (OSError, ValueError) as e:
            logger.error(f"Exception trying to retrieve series files for '{self.config.file}': {e}")
            self._record_error()
            return []

        if not files:
            console(f"No plot data file found: {workspace} {self.config.file}")
            self._record_error()
            return []

        path = files[0]
        if len(files) > 1:
            logger.debug(f"{len(files)} files match '{self.config.file}', using {path}")

        logger.debug(f"Loading plot series data from: {path}")
        try:
            points = self.load(path, build_number, console)
        except LOAD_ERRORS as e:
            logger.error(f"Exception reading plot series data from {path}: {e}")
            self._record_error()
            return []

        logger.debug(f"Loaded {len(points)} point(s) from {path}")
        return points

    @abstractmethod
    def load(self, path: Path, build_number: int, console: Console) -> List[DataPoint]:
        """Parse one data file."""
        pass

    def _record_error(self):
        if self.metrics:
            self.metrics.record_extraction_error(self.file_type)


class CsvExtractor(PointExtractor):
    """Emits one point per non-blank cell, labelled by the header row."""

    file_type = "csv"

    def __init__(self, config: CsvSeriesConfig, metrics: Optional[IngestMetrics] = None):
        super().__init__(config, metrics)
        self.exclusion = ExclusionFilter.from_config(config.inclusion_flag, config.exclusion_values)

    def load(self, path: Path, build_number: int, console: Console) -> List[DataPoint]:
        points: List[DataPoint] = []

        with open(path, 'r', newline='', encoding='utf-8-sig') as f:
            reader = csv.reader(f)
            header = next(reader, None)
            if header is None:
                logger.info(f"CSV file {path} is empty")
                return points

            line_num = 0
            for row in reader:
                # blank lines
                if not row or (len(row) == 1 and row[0] == ""):
                    continue

                for index, value in enumerate(row):
                    # trailing delimiter
                    if not value.strip():
                        continue

                    label = header[index] if index < len(header) else ""
                    if not label:
                        label = str(index)

                    if self.exclusion.should_exclude(label, index):
                        continue

                    point = DataPoint(
                        value,
                        expand_url(self.config.url, label, index, build_number),
                        label
                    )
                    logger.debug(f"CSV point [{index}:{line_num}] {point}")
                    points.append(point)

                line_num += 1

        return points


class PropertiesExtractor(PointExtractor):
    """Emits a single point from the YVALUE and URL keys."""

    file_type = "properties"

    def load(self, path: Path, build_number: int, console: Console) -> List[DataPoint]:
        console(f"Saving plot series data from: {path}")
        properties = read_properties(path)

        value = properties.get("YVALUE")
        url = properties.get("URL", "")
        if value is None:
            console(
                f"Not creating point with null values: y={value} "
                f"label={self.config.label} url={url}"
            )
            return []

        return [DataPoint(value, url, self.config.label)]


class XmlExtractor(PointExtractor):
    """Emits points selected by an XPath expression."""

    file_type = "xml"

    # How a scalar result kind is coerced in XPath 1.0
    _COERCIONS = {
        "BOOLEAN": "boolean({})",
        "NUMBER": "number({})",
        "STRING": "string({})",
    }

    def load(self, path: Path, build_number: int, console: Console) -> List[DataPoint]:
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        with open(path, 'rb') as f:
            document = etree.parse(f, parser)

        node_type = self.config.node_type
        logger.info(f"Evaluating '{self.config.xpath}' as {node_type} against {path}")

        if node_type in self._COERCIONS:
            result = document.xpath(self._COERCIONS[node_type].format(self.config.xpath))
            return self._scalar_points(result, build_number)

        result = document.xpath(self.config.xpath)
        if not isinstance(result, list):
            raise ValueError(
                f"XPath '{self.config.xpath}' does not select nodes (got {type(result).__name__})"
            )

        points: List[DataPoint] = []
        if node_type == "NODE":
            if result:
                self._add_node(points, result[0], build_number)
            return points

        logger.info(f"Number of nodes: {len(result)}")
        for node in result:
            if scan_double(_text_content(node).strip()) is None:
                return self._coalesce_by_parent(result, build_number)

        for node in result:
            self._add_node(points, node, build_number)
        return points

    def _scalar_points(self, result, build_number: int) -> List[DataPoint]:
        """Single point for BOOLEAN, NUMBER and STRING results."""
        points: List[DataPoint] = []
        if isinstance(result, bool):
            raw = "1" if result else "0"
        elif isinstance(result, float):
            raw = format_double(result)
        else:
            raw = str(result).strip()
        self._add_value(points, self.config.label, raw, build_number)
        return points

    def _coalesce_by_parent(self, nodes: list, build_number: int) -> List[DataPoint]:
        """
        Pair label and value nodes that share a parent.

        Used when the selection contains non numeric text. For every parent
        the last numeric text becomes the value and the last other text the
        label. A child without text is treated as the parent of its
        attributes, so attribute-only elements can be selected directly.
        """
        children: Dict[int, list] = {}
        parents: deque = deque()

        for node in nodes:
            parent = _parent_of(node)
            if id(parent) not in children:
                children[id(parent)] = []
                parents.append(parent)
            children[id(parent)].append(node)

        points: List[DataPoint] = []
        while parents:
            parent = parents.popleft()
            value = None
            label = None

            for child in children[id(parent)]:
                text = _text_content(child).strip()
                if not text:
                    children[id(child)] = _attributes_of(child)
                    parents.append(child)
                elif scan_double(text) is not None:
                    value = scan_double(text)
                else:
                    label = text

            if label is not None and value is not None:
                self._add_value(points, label, format_double(value), build_number)

        return points

    def _add_node(self, points: List[DataPoint], node, build_number: int):
        name = _local_name(node)
        if name is None:
            logger.info(f"Skipping node without a name: {node!r}")
            return

        label = name
        if isinstance(node, etree._Element) and node.get("name") is not None:
            label = node.get("name").strip()

        self._add_value(points, label, _node_value(node), build_number)

    def _add_value(self, points: List[DataPoint], label: str, raw: Optional[str], build_number: int):
        if not raw:
            logger.info(f"Unable to add node: {label} value: {raw!r}")
            return

        number = scan_double(raw)
        # non numeric text is kept as is
        value = format_double(number) if number is not None else raw

        logger.debug(f"Adding node: {label} value: {value}")
        points.append(DataPoint(value, expand_url(self.config.url, label, 0, build_number), label))


def _text_content(node) -> str:
    if isinstance(node, etree._Element):
        if not isinstance(node.tag, str):
            return node.text or ""
        return node.xpath("string()")
    return str(node)


def _local_name(node) -> Optional[str]:
    if isinstance(node, etree._Element):
        if isinstance(node.tag, str):
            return etree.QName(node).localname
        return None
    if getattr(node, "is_attribute", False):
        return etree.QName(node.attrname).localname
    return None


def _parent_of(node):
    getparent = getattr(node, "getparent", None)
    return getparent() if getparent else None


def _attributes_of(node) -> list:
    if isinstance(node, etree._Element) and isinstance(node.tag, str):
        return node.xpath("@*")
    return []


def _node_value(node) -> Optional[str]:
    """A time attribute wins over the text content."""
    if isinstance(node, etree._Element):
        if node.get("time") is not None:
            return node.get("time")
        return _text_content(node).strip()
    return str(node).strip()


def read_properties(path: Path) -> Dict[str, str]:
    """Read a Java properties file."""
    with open(path, 'rb') as f:
        data = f.read()
    try:
        text = data.decode('utf-8')
    except UnicodeDecodeError:
        text = data.decode('latin-1')
    return parse_properties(text)


def parse_properties(text: str) -> Dict[str, str]:
    """
    Parse properties file content.

    Supports '#' and '!' comments, '=', ':' or whitespace separators,
    backslash line continuations and the usual escapes including \\uXXXX.
    Later keys override earlier ones.
    """
    properties: Dict[str, str] = {}
    lines = text.splitlines()
    i = 0

    while i < len(lines):
        line = lines[i].lstrip(" \t\f")
        i += 1
        if not line or line[0] in "#!":
            continue

        while _continues(line) and i < len(lines):
            line = line[:-1] + lines[i].lstrip(" \t\f")
            i += 1
        if _continues(line):
            line = line[:-1]

        key, value = _split_property(line)
        properties[_unescape(key)] = _unescape(value)

    return properties


def _continues(line: str) -> bool:
    backslashes = len(line) - len(line.rstrip("\\"))
    return backslashes % 2 == 1


def _split_property(line: str):
    index = 0
    while index < len(line):
        c = line[index]
        if c == "\\":
            index += 2
            continue
        if c in "=: \t\f":
            break
        index += 1

    key = line[:index]
    rest = line[index:].lstrip(" \t\f")
    if rest and rest[0] in "=:":
        rest = rest[1:].lstrip(" \t\f")
    return key, rest


_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def _unescape(text: str) -> str:
    if "\\" not in text:
        return text

    out = []
    i = 0
    while i < len(text):
        c = text[i]
        if c != "\\":
            out.append(c)
            i += 1
            continue
        if i + 1 >= len(text):
            break

        escaped = text[i + 1]
        if escaped == "u":
            digits = text[i + 2:i + 6]
            if len(digits) != 4:
                raise ValueError(f"Malformed \\uxxxx encoding in '{text}'")
            out.append(chr(int(digits, 16)))
            i += 6
        else:
            out.append(_ESCAPES.get(escaped, escaped))
            i += 2

    return "".join(out)


def create_extractor(config, metrics: Optional[IngestMetrics] = None) -> PointExtractor:
    """Factory function to create the extractor for a series configuration."""
    if isinstance(config, CsvSeriesConfig):
        return CsvExtractor(config, metrics)
    elif isinstance(config, PropertiesSeriesConfig):
        return PropertiesExtractor(config, metrics)
    elif isinstance(config, XmlSeriesConfig):
        return XmlExtractor(config, metrics)
    else:
        raise ValueError(f"Unknown series type: {type(config).__name__}")
