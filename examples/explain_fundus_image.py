"""
Explain a retinopathy classifier's prediction on a fundus photograph.

Usage:
    python explain_fundus_image.py path/to/fundus.jpg [output.png]

Replace `lesion_score` with a call into your own classifier; any function
returning a probability in [0, 1] for an (H, W, 3) float image works, as
does any model exposing `predict(batch)`.
"""
import sys
import logging

import numpy as np

from retishap import SHAPImageExplainer, risk_assessment

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def lesion_score(img: np.ndarray) -> float:
    # Share of dark-red pixels, a crude stand-in for hemorrhage detection
    red, green, blue = img[..., 0], img[..., 1], img[..., 2]
    lesions = (red > 0.45) & (red < 0.8) & (green < 0.25) & (blue < 0.25)
    return float(min(1.0, lesions.mean() * 20))


def main(image_path: str, output_path: str = "explanation.png") -> None:
    explainer = SHAPImageExplainer(lesion_score, show_progress=True)
    result = explainer.generate(image_path)

    print(result.analysis_text)
    if not result.succeeded:
        sys.exit(1)

    print()
    print(risk_assessment(result.confidence))
    for region in result.important_regions[:5]:
        logger.info(f"Region {tuple(region.segment)}: {region.value:+.4f}")

    result.plot(image_path, title="Fundus Contribution Analysis", save_path=output_path)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    main(*sys.argv[1:3])
