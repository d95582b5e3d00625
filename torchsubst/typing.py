from typing import List, Optional, Union

import torch

ListTensor = List[torch.Tensor]
ID = Union[str, None]
OptionalTensor = Optional[torch.Tensor]
