import argparse
import requests
import json
import logging
import math
import os
import time
from shapely.geometry import LineString

from config import (
    KEY_PRECISION, SEQUENTIAL_TOLERANCE, DEFAULT_MODE, MODES,
    HTTP_TIMEOUT, MAX_RETRIES, RETRY_DELAY, JSON_INDENT, LOG_FILE,
)
from path_merge import merge, merge_sequential

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOG_FILE),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


def _is_number(value):
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


class PathConnector:
    """Reads GeoJSON path fragments, stitches them and writes the result."""

    def __init__(self, mode=DEFAULT_MODE, precision=KEY_PRECISION, tolerance=SEQUENTIAL_TOLERANCE):
        self.mode = mode
        self.precision = precision
        self.tolerance = tolerance
        self.features = []
        self.segments = []
        self.chains = []
        self.http_timeout = HTTP_TIMEOUT
        self.max_retries = MAX_RETRIES
        self.retry_delay = RETRY_DELAY

    def fetch_geojson(self, url):
        """GET a GeoJSON document and return its text, or None.

        HTTP 429, 5xx, timeouts and dropped connections are retried with a
        linearly growing delay; any other status gives up at once.
        """
        logger.info(f"Fetching GeoJSON from {url}")

        for attempt in range(1, self.max_retries + 1):
            try:
                response = requests.get(url, timeout=self.http_timeout)
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                logger.warning(f"{url} attempt {attempt}/{self.max_retries} failed ({e.__class__.__name__})")
            else:
                if response.status_code == 200:
                    return response.text
                logger.warning(f"{url} attempt {attempt}/{self.max_retries} returned HTTP {response.status_code}")
                if response.status_code != 429 and response.status_code < 500:
                    break

            if attempt < self.max_retries:
                time.sleep(self.retry_delay * attempt)

        logger.error(f"Could not fetch {url}")
        return None

    @staticmethod
    def _parse_coordinates(feature, position):
        """Validate a LineString's coordinates and return them as (x, y) tuples.

        A z value, when present, is dropped so every chain stays 2D.
        """
        coords = feature['geometry'].get('coordinates')
        if not isinstance(coords, list) or not coords:
            raise ValueError(f"Feature {position} has no coordinates")

        parsed = []
        for coord in coords:
            if (not isinstance(coord, (list, tuple)) or len(coord) < 2
                    or not all(_is_number(c) for c in coord)):
                raise ValueError(f"Feature {position} has an invalid coordinate: {coord!r}")
            parsed.append((coord[0], coord[1]))
        return parsed

    def parse_geojson(self, data):
        """Extract LineString segments from a FeatureCollection dict.

        Non-LineString features (e.g. Point nodes of a loom graph) are skipped.
        Raises ValueError on malformed structure.
        """
        if not isinstance(data, dict) or data.get('type') != 'FeatureCollection':
            raise ValueError("Input is not a GeoJSON FeatureCollection")
        features = data.get('features')
        if not isinstance(features, list):
            raise ValueError("FeatureCollection has no 'features' list")

        self.features = []
        self.segments = []
        self.chains = []

        skipped = 0
        for position, feature in enumerate(features):
            if not isinstance(feature, dict) or not isinstance(feature.get('geometry'), dict):
                raise ValueError(f"Feature {position} has no geometry")
            if feature['geometry'].get('type') != 'LineString':
                skipped += 1
                continue

            self.segments.append(self._parse_coordinates(feature, position))
            self.features.append(feature)

        if skipped > 0:
            logger.warning(f"{skipped} non-LineString features were skipped")
        logger.info(f"Parsed {len(self.segments)} path segments")

    def load_geojson(self, source):
        """Load segments from a GeoJSON file path or http(s) URL."""
        try:
            if source.startswith(('http://', 'https://')):
                text = self.fetch_geojson(source)
                if text is None:
                    return False
            else:
                if not os.path.exists(source):
                    logger.error(f"File not found: {source}")
                    return False
                logger.info(f"Reading GeoJSON from {source}")
                with open(source) as f:
                    text = f.read()

            self.parse_geojson(json.loads(text))
            return True

        except json.JSONDecodeError as e:
            logger.error(f"Error parsing JSON: {e}")
            return False
        except ValueError as e:
            logger.error(f"Malformed GeoJSON: {e}")
            return False
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error: {e}")
            return False
        except IOError as e:
            logger.error(f"Error reading input: {e}")
            return False

    def connect(self):
        """Stitch the loaded segments into chains."""
        if not self.segments:
            logger.error("No segments to connect. Please load GeoJSON first.")
            return False

        try:
            if self.mode == 'sequential':
                self.chains = merge_sequential(self.segments, tolerance=self.tolerance)
            elif self.mode == 'endpoint':
                self.chains = merge(self.segments, precision=self.precision)
            else:
                raise ValueError(f"Unknown mode '{self.mode}', expected one of {MODES}")
        except ValueError as e:
            logger.error(f"Error connecting paths: {e}")
            return False

        logger.info(f"Connected {len(self.segments)} features into {len(self.chains)} paths")
        return True

    def build_geojson(self):
        """Convert chains to a GeoJSON FeatureCollection dict."""
        features = []
        for i, chain in enumerate(self.chains):
            features.append({
                'type': 'Feature',
                'properties': {
                    'id': i,
                    'connected': True,
                    'length': len(chain)
                },
                'geometry': {
                    'type': 'LineString',
                    'coordinates': [list(c) for c in chain]
                }
            })

        return {
            'type': 'FeatureCollection',
            'features': features
        }

    def save_geojson(self, output_file):
        """Write the connected paths as GeoJSON."""
        if not self.chains:
            logger.error("No connected paths to save. Please run connect first.")
            return False

        try:
            with open(output_file, 'w') as f:
                json.dump(self.build_geojson(), f, indent=JSON_INDENT)

            logger.info(f"Connected paths saved to {output_file}")
            return True

        except IOError as e:
            logger.error(f"Error saving GeoJSON: {e}")
            return False

    def get_statistics(self):
        """Return statistics about the last connect run."""
        if not self.chains:
            return {}

        lines = [LineString(chain) for chain in self.chains]
        coords_in = sum(len(s) for s in self.segments)
        coords_out = sum(len(c) for c in self.chains)

        return {
            'total_segments': len(self.segments),
            'total_chains': len(self.chains),
            'total_coordinates': coords_out,
            'joins': coords_in - coords_out,
            'closed_chains': sum(1 for line in lines if line.is_closed),
            'longest_chain': max(len(c) for c in self.chains),
            'total_length_degrees': round(sum(line.length for line in lines), 6)
        }


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Connect disconnected GeoJSON path segments into continuous paths',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python connect_paths.py maze.geojson maze_connected.geojson
  python connect_paths.py trails.geojson out.geojson --stats
  python connect_paths.py trails.geojson out.geojson --mode sequential --tolerance 0.0005
  python connect_paths.py https://example.org/paths.geojson out.geojson
        """
    )

    parser.add_argument('input', help='Input GeoJSON file or http(s) URL')
    parser.add_argument('output', help='Output GeoJSON file')
    parser.add_argument('--mode', choices=MODES, default=DEFAULT_MODE,
                        help='endpoint: match rounded endpoints and grow both ends; '
                             'sequential: grow the tail by distance tolerance')
    parser.add_argument('--precision', type=int, default=KEY_PRECISION,
                        help='Decimal digits used to match endpoints (endpoint mode)')
    parser.add_argument('--tolerance', type=float, default=SEQUENTIAL_TOLERANCE,
                        help='Max endpoint distance (sequential mode)')
    parser.add_argument('--stats', action='store_true', help='Display statistics about the connected paths')

    args = parser.parse_args(argv)

    connector = PathConnector(mode=args.mode, precision=args.precision, tolerance=args.tolerance)

    if not connector.load_geojson(args.input):
        return False

    if not connector.connect():
        return False

    if not connector.save_geojson(args.output):
        return False

    stats = connector.get_statistics()
    logger.info(f"Total coordinates: {stats['total_coordinates']}")
    if args.stats:
        logger.info(f"Path Statistics: {json.dumps(stats, indent=2)}")

    return True


if __name__ == '__main__':
    success = main()
    exit(0 if success else 1)
