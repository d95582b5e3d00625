import argparse
import importlib
import json
import logging
import sys

import torch

from .core.model import Runnable
from .core.utils import (
    JSONParseError,
    SubstitutionDistributionError,
    get_class,
    package_contents,
    process_objects,
    remove_comments,
)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='torchsubst',
        description='Distributions of the number of substitutions on a phylogeny',
    )
    parser.add_argument(
        'file',
        type=argparse.FileType('r'),
        metavar='input-file-name',
        help='JSON configuration file',
    )
    parser.add_argument(
        '--dry',
        action='store_true',
        help='parse the configuration without running the analyses',
    )
    parser.add_argument(
        '--dtype',
        choices=['float32', 'float64'],
        default='float64',
        help='default floating point type of tensors (default: float64)',
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='log debugging messages (e.g. convolution timings)',
    )
    return parser


def run_configuration(data: list, dry: bool = False) -> dict:
    """Build the objects of a configuration in order and run the
    :class:`~torchsubst.core.model.Runnable` ones.

    :return: objects keyed by ID
    """
    remove_comments(data)
    dic = {}
    for element in data:
        obj = process_objects(element, dic)
        if not dry and isinstance(obj, Runnable):
            obj.run()
    return dic


def main():
    """Main function to run torchsubst."""
    arg = create_parser().parse_args()

    logging.basicConfig(
        format='%(levelname)s: %(message)s',
        level=logging.DEBUG if arg.debug else logging.WARNING,
    )
    torch.set_default_dtype(get_class('torch.' + arg.dtype))

    # registered classes can be referred to without their module
    for module in sorted(package_contents('torchsubst')):
        importlib.import_module(module)

    data = json.load(arg.file)
    try:
        run_configuration(data, arg.dry)
    except JSONParseError as error:
        logging.error(error)
        sys.exit(1)
    except SubstitutionDistributionError as error:
        logging.error(error)
        sys.exit(1)


if __name__ == "__main__":
    main()
